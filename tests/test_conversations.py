import pytest
from unittest.mock import MagicMock, patch

from api import routes
from api.services.conversations import ConversationService


def test_patient_id_prefers_data_metadata():
    payload = {
        'data': {
            'metadata': {'patient_id': 'from-metadata'},
            'conversation_initiation_client_data': {'dynamic_variables': {'patient_id': 'from-dynamic'}},
            'user_id': 'from-user',
        },
        'metadata': {'patient_id': 'from-top-level'},
    }
    assert ConversationService.resolve_patient_id(payload) == 'from-metadata'


def test_patient_id_fallback_order():
    payload = {
        'data': {
            'conversation_initiation_client_data': {'dynamic_variables': {'patient_id': 'from-dynamic'}},
            'user_id': 'from-user',
        },
    }
    assert ConversationService.resolve_patient_id(payload) == 'from-dynamic'

    assert ConversationService.resolve_patient_id({'data': {'user_id': 'from-user'}}) == 'from-user'
    assert ConversationService.resolve_patient_id({'metadata': {'patient_id': 'top'}}) == 'top'


def test_patient_id_skips_empty_values_and_odd_shapes():
    payload = {'data': {'metadata': {'patient_id': ''}, 'user_id': 'from-user'}}
    assert ConversationService.resolve_patient_id(payload) == 'from-user'
    assert ConversationService.resolve_patient_id({'data': 'not-a-dict'}) is None


def test_event_type_prefers_type():
    assert ConversationService.get_event_type({'type': 'a', 'event_type': 'b'}) == 'a'
    assert ConversationService.get_event_type({'event_type': 'b'}) == 'b'
    assert ConversationService.get_event_type({}) is None


def test_patient_lookup_error_means_not_found(make_query):
    client = MagicMock()
    client.table.return_value = make_query(error=RuntimeError('timeout'))
    assert ConversationService(client).patient_exists('p1') is False


def test_summary_from_analysis():
    conversation = {
        'conversation_data': {
            'analysis': {'transcript_summary': 'Pain is improving', 'key_topics': ['pain', 'sleep']},
            'metadata': {'call_duration_secs': 150},
            'transcript': [
                {'role': 'agent', 'message': 'Hi'},
                {'role': 'user', 'message': 'Hello'},
                {'role': 'agent', 'message': 'How are you?'},
                {'message': 'no speaker'},
            ],
        }
    }
    assert ConversationService.summarize(conversation) == {
        'summary': 'Pain is improving',
        'duration': '3 min',
        'participantCount': 2,
        'keyTopics': ['pain', 'sleep']
    }


def test_summary_prefers_top_level_summary():
    conversation = {'conversation_data': {'summary': 'Top', 'analysis': {'summary': 'Nested'}}}
    assert ConversationService.summarize(conversation)['summary'] == 'Top'


def test_summary_defaults():
    summary = ConversationService.summarize({'conversation_data': {'analysis': {'topics': 'pain'}}})
    assert summary == {
        'summary': 'No summary available',
        'duration': 'Unknown duration',
        'participantCount': 0,
        'keyTopics': []
    }


@pytest.mark.parametrize('seconds, expected', [(30, '1 min'), (89, '1 min'), (90, '2 min'), (600, '10 min')])
def test_summary_duration_rounding(seconds, expected):
    conversation = {'conversation_data': {'metadata': {'call_duration': seconds}}}
    assert ConversationService.summarize(conversation)['duration'] == expected


def test_list_conversations_route(test_client, use_tables, make_query):
    conversations = make_query(data=[
        {'id': 'row-1', 'patient_id': 'p1', 'conversation_data': {'summary': 'Fine'}, 'created_at': '2024-01-01'}
    ])
    use_tables({'conversations': conversations})

    response = test_client.get('/api/conversations?patient_id=p1&limit=500')

    assert response.status_code == 200
    assert response.json['success'] is True
    assert response.json['conversations'][0]['summary']['summary'] == 'Fine'
    conversations.limit.assert_called_once_with(100)
    conversations.eq.assert_called_once_with('patient_id', 'p1')
    conversations.order.assert_called_once_with('created_at', desc=True)


def test_get_conversation_route(test_client, use_tables, make_query):
    use_tables({'conversations': make_query(data={'id': 'row-1', 'conversation_data': {}})})

    response = test_client.get('/api/conversations/row-1')

    assert response.status_code == 200
    assert response.json['conversation']['id'] == 'row-1'
    assert response.json['conversation']['summary']['summary'] == 'No summary available'


def test_get_conversation_not_found(test_client, use_tables, make_query):
    use_tables({'conversations': make_query(data=None)})

    response = test_client.get('/api/conversations/missing')

    assert response.status_code == 404
    assert response.json == {'error': 'Conversation not found'}


def test_conversation_reads_need_database(test_client):
    with patch.object(routes.conversation_service, 'supabase', None):
        response = test_client.get('/api/conversations')
    assert response.status_code == 500
    assert response.json == {'error': 'Database connection not configured'}


def test_summary_accepts_numeric_string_duration():
    conversation = {'conversation_data': {'metadata': {'call_duration': '150'}}}
    assert ConversationService.summarize(conversation)['duration'] == '3 min'


@pytest.mark.parametrize('seconds', ['soon', [150], {'s': 150}, 'nan'])
def test_summary_unreadable_duration(seconds):
    conversation = {'conversation_data': {'metadata': {'call_duration': seconds}}}
    assert ConversationService.summarize(conversation)['duration'] == 'Unknown duration'


@pytest.mark.parametrize('data', [
    {'analysis': 'free text', 'metadata': 'n/a', 'transcript': 'hello'},
    'not-a-dict',
    None,
])
def test_summary_tolerates_odd_blob_shapes(data):
    assert ConversationService.summarize({'conversation_data': data}) == {
        'summary': 'No summary available',
        'duration': 'Unknown duration',
        'participantCount': 0,
        'keyTopics': []
    }


def test_list_conversations_with_odd_blob(test_client, use_tables, make_query):
    use_tables({'conversations': make_query(data=[
        {'id': 'row-1', 'patient_id': 'p1', 'conversation_data': {'analysis': 'free text',
                                                                   'metadata': {'call_duration': '150'}}}
    ])})

    response = test_client.get('/api/conversations?patient_id=p1')

    assert response.status_code == 200
    assert response.json['conversations'][0]['summary']['duration'] == '3 min'


def test_get_conversation_query_error_is_json_500(test_client, use_tables, make_query):
    use_tables({'conversations': make_query(error=RuntimeError('invalid input syntax for type uuid'))})

    response = test_client.get('/api/conversations/not-a-uuid')

    assert response.status_code == 500
    assert response.json == {'error': 'Internal server error'}


def test_list_conversations_query_error_is_json_500(test_client, use_tables, make_query):
    use_tables({'conversations': make_query(error=RuntimeError('connection reset'))})

    response = test_client.get('/api/conversations')

    assert response.status_code == 500
    assert response.json == {'error': 'Internal server error'}
