def test_health(client):
    resp = client.get('/health')
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'healthy'


def test_readiness_with_database(client):
    resp = client.get('/health/ready')
    assert resp.status_code == 200
    checks = resp.get_json()
    assert checks['database'] == 'healthy'
    assert checks['schema'] == 'complete'
    assert checks['overall'] == 'healthy'


def test_readiness_reports_missing_table(client, db):
    db.drop_all()
    resp = client.get('/health/ready')
    assert resp.status_code == 503
    assert resp.get_json()['missing_tables'] == ['settings']


def test_liveness(client):
    assert client.get('/health/live').get_json()['status'] == 'alive'
