import asyncio
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from lib.database import DOCTORS_TABLE, PATIENTS_TABLE, PROFILES_TABLE, first_row
from lib.error_handler import AppError, ValidationError

logger = logging.getLogger(__name__)

VALID_ROLES = ('doctor', 'patient', 'admin', 'nurse')


def generate_patient_id(user_id: str, now: Optional[datetime] = None) -> str:
    """PAT-<year>-<day of year>-<first six id chars>, e.g. PAT-2024-032-A1B2C3."""
    now = now or datetime.now(timezone.utc)
    day_of_year = now.timetuple().tm_yday
    return f"PAT-{now.year}-{day_of_year:03d}-{user_id[:6].upper()}"


def resolve_full_name(record: Dict[str, Any], metadata: Dict[str, Any]) -> str:
    email = record.get('email')
    return (
        metadata.get('full_name')
        or metadata.get('fullName')
        or (email.split('@')[0] if email else None)
        or 'User'
    )


class ProfileService:
    def __init__(self, supabase_client, fetch_attempts: int = 5, fetch_delay: float = 1.0):
        self.supabase = supabase_client
        self.fetch_attempts = fetch_attempts
        self.fetch_delay = fetch_delay

    def _insert(self, table: str, data: Dict[str, Any], label: str) -> Dict[str, Any]:
        try:
            result = self.supabase.table(table).insert(data).execute()
        except Exception as e:
            logger.error(f"Error creating {label}: {str(e)}")
            raise AppError(f"{label.capitalize()} creation failed: {str(e)}")
        row = first_row(result)
        if row is None:
            raise AppError(f"{label.capitalize()} creation failed: no row returned")
        return row

    def create_profile_on_signup(self, user: Dict[str, Any]) -> Dict[str, Any]:
        """Create the profile and the role-specific row for a new auth user."""
        user_id = user.get('id')
        if not user_id:
            raise ValidationError('User record has no id')

        metadata = user.get('raw_user_meta_data') or {}
        logger.info(f"Processing new user registration: {user_id}")

        role = metadata.get('role') or 'patient'
        if role not in VALID_ROLES:
            logger.error(f"Invalid role provided: {role}")
            raise ValidationError(f"Invalid role: {role}. Must be one of: {', '.join(VALID_ROLES)}")

        profile_data = {
            'id': user_id,
            'email': user.get('email'),
            'full_name': resolve_full_name(user, metadata),
            'role': role,
            'avatar_url': metadata.get('avatar_url'),
            'phone': metadata.get('phone'),
            'date_of_birth': metadata.get('date_of_birth') or metadata.get('dateOfBirth'),
            'address': metadata.get('address'),
            'emergency_contact_name': metadata.get('emergency_contact_name'),
            'emergency_contact_phone': metadata.get('emergency_contact_phone')
        }
        profile = self._insert(PROFILES_TABLE, profile_data, 'profile')
        logger.info(f"Profile created successfully: {profile.get('id')}")

        role_record = None
        role_data = None
        if role == 'doctor':
            role_record = self._insert(DOCTORS_TABLE, {
                'profile_id': user_id,
                'license_number': metadata.get('license_number') or f"TEMP-{user_id[:8]}",
                'specialization': metadata.get('specialization') or 'General Practice',
                'years_of_experience': metadata.get('years_of_experience') or 0,
                'hospital_affiliation': metadata.get('hospital_affiliation'),
                'consultation_fee': metadata.get('consultation_fee'),
                'is_active': True
            }, 'doctor record')
            role_data = {
                'id': role_record.get('id'),
                'specialization': role_record.get('specialization'),
                'license_number': role_record.get('license_number')
            }
        elif role == 'patient':
            role_record = self._insert(PATIENTS_TABLE, {
                'profile_id': user_id,
                'patient_id': generate_patient_id(user_id),
                'assigned_doctor_id': metadata.get('assigned_doctor_id') or metadata.get('assignedDoctorId'),
                'blood_type': metadata.get('blood_type'),
                'allergies': metadata.get('allergies'),
                'chronic_conditions': metadata.get('chronic_conditions'),
                'status': 'active'
            }, 'patient record')
            role_data = {
                'id': role_record.get('id'),
                'patient_id': role_record.get('patient_id'),
                'status': role_record.get('status')
            }
        else:
            logger.info(f"{role.capitalize()} profile created successfully")

        data = {
            'user_id': user_id,
            'email': user.get('email'),
            'role': role,
            'profile_created': True,
            'role_specific_record_created': role_record is not None,
            'profile_data': {
                'id': profile.get('id'),
                'full_name': profile.get('full_name'),
                'role': profile.get('role')
            }
        }
        if role_data:
            data['role_specific_data'] = role_data

        return {
            'success': True,
            'message': 'User profile and role-specific records created successfully',
            'data': data,
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

    @staticmethod
    def signup_failure(error: Exception, include_debug: bool = False) -> Dict[str, Any]:
        message = error.message if isinstance(error, AppError) else str(error)
        body = {
            'success': False,
            'error': 'Profile creation failed',
            'message': message,
            'details': (
                'User account was created but profile setup encountered an issue. '
                'Please contact support if you experience any problems.'
            ),
            'timestamp': datetime.now(timezone.utc).isoformat()
        }
        if include_debug:
            body['debug_info'] = {
                'error_name': type(error).__name__,
                'error_stack': ''.join(traceback.format_exception(type(error), error, error.__traceback__))
            }
        return body

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table(PROFILES_TABLE)\
            .select('*')\
            .eq('id', user_id)\
            .maybe_single()\
            .execute()
        return first_row(result)

    async def fetch_profile_with_retry(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Poll for a profile the signup hook may not have written yet."""
        for attempt in range(1, self.fetch_attempts + 1):
            try:
                profile = self.get_profile(user_id)
            except Exception as e:
                logger.warning(f"Profile fetch for {user_id} failed on attempt {attempt}: {str(e)}")
                profile = None

            if profile:
                logger.info(f"Profile fetched successfully on attempt {attempt}. Role: {profile.get('role')}")
                return profile

            if attempt < self.fetch_attempts:
                logger.warning(
                    f"Profile not found for user {user_id} on attempt {attempt}. "
                    f"Retrying in {self.fetch_delay}s..."
                )
                await asyncio.sleep(self.fetch_delay)

        logger.error(f"Failed to fetch profile for user {user_id} after {self.fetch_attempts} attempts.")
        return None
