import os
import pytest
from unittest.mock import MagicMock, patch
import sys
from pathlib import Path

# Add project root to Python path
project_root = str(Path(__file__).parent.parent)
sys.path.append(project_root)

TEST_WEBHOOK_SECRET = 'test-webhook-secret'

# Settings are read once when the app module is imported
os.environ.update({
    'ENVIRONMENT': 'test',
    'SUPABASE_URL': 'https://test-project.supabase.co',
    'SUPABASE_SERVICE_ROLE_KEY': 'test-service-role-key',
    'ELEVENLABS_API_KEY': 'test-elevenlabs-key',
    'ELEVENLABS_WEBHOOK_SECRET': TEST_WEBHOOK_SECRET,
    'PICA_SECRET_KEY': 'test-pica-secret',
    'PICA_ELEVENLABS_CONNECTION_KEY': 'test-pica-connection',
    'OPENAI_API_KEY': '',
    'ANALYSIS_PROVIDER': 'keyword',
    'PROFILE_FETCH_DELAY': '0',
})

# Mock Supabase before importing app
import supabase
def mock_create_client(*args, **kwargs):
    mock_client = MagicMock()
    mock_client.table = MagicMock()
    mock_client.auth = MagicMock()
    return mock_client

supabase.create_client = mock_create_client

# Now we can safely import the app
from api import routes
from api.routes import app

QUERY_METHODS = (
    'select', 'insert', 'update', 'upsert', 'delete',
    'eq', 'in_', 'order', 'limit', 'single', 'maybe_single',
)


def _make_query(data=None, error=None, sequence=None):
    """Chainable PostgREST builder whose execute() returns ``data``.

    ``sequence`` gives one data value per execute() call, in order.
    """
    query = MagicMock()
    for method in QUERY_METHODS:
        getattr(query, method).return_value = query

    if error is not None:
        query.execute.side_effect = error
    elif sequence is not None:
        query.execute.side_effect = [MagicMock(data=item) for item in sequence]
    else:
        query.execute.return_value = MagicMock(data=data)
    return query


class AsyncContextManager:
    """Stands in for the ``async with session.post(...)`` response."""
    def __init__(self, response):
        self.response = response

    async def __aenter__(self):
        return self.response

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


def _vendor_response(status=200, json_data=None, text='', body=b''):
    mock_response = MagicMock()
    mock_response.status = status

    async def _json():
        return json_data if json_data is not None else {}

    async def _text():
        return text

    async def _read():
        return body

    mock_response.json = _json
    mock_response.text = _text
    mock_response.read = _read
    return AsyncContextManager(mock_response)


@pytest.fixture
def test_client():
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def make_query():
    return _make_query


@pytest.fixture
def vendor_response():
    return _vendor_response


@pytest.fixture
def mock_supabase():
    """Fresh Supabase client shared by every service for one test."""
    client = MagicMock()
    with patch.object(routes.conversation_service, 'supabase', client), \
            patch.object(routes.checkin_service, 'supabase', client), \
            patch.object(routes.agent_service, 'supabase', client), \
            patch.object(routes.profile_service, 'supabase', client):
        yield client


def route_tables(client, tables):
    """Send ``client.table(name)`` to the query registered for ``name``."""
    client.table.side_effect = lambda name: tables[name]
    return client


@pytest.fixture
def use_tables(mock_supabase):
    def _use(tables):
        return route_tables(mock_supabase, tables)
    return _use
