from api import routes


def test_root(test_client):
    response = test_client.get('/')
    assert response.status_code == 200
    assert response.json['status'] == 'ok'
    assert response.json['version'] == routes.VERSION
    assert 'timestamp' in response.json


def test_status_reports_integrations_without_secrets(test_client):
    response = test_client.get('/status')

    assert response.status_code == 200
    body = response.json
    assert body['database'] is True
    assert body['webhook_secret'] is True
    assert body['elevenlabs'] is True
    assert body['pica'] is True
    assert body['openai'] is False
    assert routes.settings.elevenlabs_webhook_secret not in response.get_data(as_text=True)


def test_unknown_route(test_client):
    response = test_client.get('/api/nope')
    assert response.status_code == 404
    assert response.json == {'error': 'Not Found', 'message': 'Route /api/nope not found'}


def test_preflight_has_cors_headers(test_client):
    response = test_client.options('/api/checkin')
    assert response.status_code == 200
    assert response.headers['Access-Control-Allow-Origin'] == '*'
    assert 'POST' in response.headers['Access-Control-Allow-Methods']
