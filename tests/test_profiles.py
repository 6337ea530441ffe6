from datetime import datetime, timezone
from unittest.mock import patch

from api import routes
from api.services.profiles import generate_patient_id

USER_ID = 'a1b2c3d4-e5f6-4a7b-8c9d-0123456789ab'


def signup_event(metadata=None, email='asha.k@example.com'):
    return {
        'type': 'INSERT',
        'table': 'users',
        'schema': 'auth',
        'record': {
            'id': USER_ID,
            'email': email,
            'raw_user_meta_data': metadata or {}
        },
        'old_record': None
    }


def test_generate_patient_id():
    now = datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert generate_patient_id(USER_ID, now) == 'PAT-2024-032-A1B2C3'


def test_generate_patient_id_pads_day_of_year():
    now = datetime(2025, 1, 5, tzinfo=timezone.utc)
    assert generate_patient_id('abcdef99', now) == 'PAT-2025-005-ABCDEF'


def test_non_insert_events_are_not_processed(test_client, mock_supabase):
    response = test_client.post('/api/profiles/on-signup', json={'type': 'UPDATE', 'table': 'users'})
    assert response.status_code == 200
    assert response.json == {'message': 'Event not processed', 'type': 'UPDATE', 'table': 'users'}
    mock_supabase.table.assert_not_called()


def test_patient_signup(test_client, use_tables, make_query):
    profiles = make_query(data=[{'id': USER_ID, 'full_name': 'Asha K', 'role': 'patient'}])
    patients = make_query(data=[{'id': 'pt-1', 'patient_id': 'PAT-2024-032-A1B2C3', 'status': 'active'}])
    use_tables({'profiles': profiles, 'patients': patients})

    response = test_client.post('/api/profiles/on-signup', json=signup_event({
        'full_name': 'Asha K',
        'assignedDoctorId': 'doc-1'
    }))

    assert response.status_code == 200
    body = response.json
    assert body['success'] is True
    assert body['data']['role'] == 'patient'
    assert body['data']['role_specific_record_created'] is True
    assert body['data']['role_specific_data'] == {
        'id': 'pt-1', 'patient_id': 'PAT-2024-032-A1B2C3', 'status': 'active'
    }

    profile_row = profiles.insert.call_args.args[0]
    assert profile_row['full_name'] == 'Asha K'
    assert profile_row['role'] == 'patient'
    patient_row = patients.insert.call_args.args[0]
    assert patient_row['profile_id'] == USER_ID
    assert patient_row['patient_id'].startswith('PAT-')
    assert patient_row['patient_id'].endswith('-A1B2C3')
    assert patient_row['assigned_doctor_id'] == 'doc-1'
    assert patient_row['status'] == 'active'


def test_doctor_signup_defaults(test_client, use_tables, make_query):
    profiles = make_query(data=[{'id': USER_ID, 'full_name': 'asha.k', 'role': 'doctor'}])
    doctors = make_query(data=[{'id': 'dr-1', 'specialization': 'General Practice', 'license_number': 'TEMP-a1b2c3d4'}])
    use_tables({'profiles': profiles, 'doctors': doctors})

    response = test_client.post('/api/profiles/on-signup', json=signup_event({'role': 'doctor'}))

    assert response.json['success'] is True
    assert profiles.insert.call_args.args[0]['full_name'] == 'asha.k'
    doctor_row = doctors.insert.call_args.args[0]
    assert doctor_row['license_number'] == 'TEMP-a1b2c3d4'
    assert doctor_row['specialization'] == 'General Practice'
    assert doctor_row['years_of_experience'] == 0
    assert doctor_row['is_active'] is True


def test_nurse_signup_creates_profile_only(test_client, use_tables, make_query):
    profiles = make_query(data=[{'id': USER_ID, 'full_name': 'User', 'role': 'nurse'}])
    use_tables({'profiles': profiles})

    response = test_client.post('/api/profiles/on-signup', json=signup_event({'role': 'nurse'}, email=None))

    assert response.json['success'] is True
    assert response.json['data']['role_specific_record_created'] is False
    assert 'role_specific_data' not in response.json['data']
    assert profiles.insert.call_args.args[0]['full_name'] == 'User'


def test_invalid_role_still_returns_200(test_client, mock_supabase):
    response = test_client.post('/api/profiles/on-signup', json=signup_event({'role': 'janitor'}))

    assert response.status_code == 200
    body = response.json
    assert body['success'] is False
    assert body['error'] == 'Profile creation failed'
    assert 'Invalid role: janitor' in body['message']
    assert 'debug_info' not in body
    mock_supabase.table.assert_not_called()


def test_profile_insert_failure_has_debug_info_in_development(test_client, use_tables, make_query):
    use_tables({'profiles': make_query(error=RuntimeError('duplicate key'))})

    with patch.object(routes.settings, 'environment', 'development'):
        response = test_client.post('/api/profiles/on-signup', json=signup_event())

    assert response.status_code == 200
    body = response.json
    assert body['success'] is False
    assert body['message'] == 'Profile creation failed: duplicate key'
    assert body['debug_info']['error_name'] == 'AppError'


def test_get_profile(test_client, use_tables, make_query):
    use_tables({'profiles': make_query(data={'id': USER_ID, 'role': 'patient'})})

    response = test_client.get(f'/api/profiles/{USER_ID}')

    assert response.status_code == 200
    assert response.json == {'success': True, 'profile': {'id': USER_ID, 'role': 'patient'}}


def test_get_profile_retries_until_found(test_client, use_tables, make_query):
    profiles = make_query(sequence=[None, None, {'id': USER_ID, 'role': 'doctor'}])
    use_tables({'profiles': profiles})

    response = test_client.get(f'/api/profiles/{USER_ID}')

    assert response.status_code == 200
    assert response.json['profile']['role'] == 'doctor'
    assert profiles.execute.call_count == 3


def test_get_profile_gives_up(test_client, use_tables, make_query):
    profiles = make_query(data=None)
    use_tables({'profiles': profiles})

    response = test_client.get(f'/api/profiles/{USER_ID}')

    assert response.status_code == 404
    assert response.json == {'error': 'Profile not found'}
    assert profiles.execute.call_count == routes.settings.profile_fetch_attempts
