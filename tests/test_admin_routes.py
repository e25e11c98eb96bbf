"""Admin settings screen: auth, partial-success saves, flash messages."""


def _form(*rows, general_fallback='', countdown=True):
    data = {'general_fallback': general_fallback}
    if countdown:
        data['show_countdown_subline'] = 'y'
    for index, (category, image_ref, color) in enumerate(rows):
        data[f'mappings-{index}-category'] = category
        data[f'mappings-{index}-image_ref'] = image_ref
        data[f'mappings-{index}-color'] = color
    return data


def test_requires_credentials(client):
    resp = client.get('/admin/calendar-enhanced')
    assert resp.status_code == 401
    assert 'Basic' in resp.headers['WWW-Authenticate']


def test_rejects_wrong_password(client):
    import base64

    token = base64.b64encode(b'admin:wrong').decode('ascii')
    resp = client.get('/admin/calendar-enhanced', headers={'Authorization': f'Basic {token}'})
    assert resp.status_code == 401


def test_forbidden_without_configured_password(app, client, auth_headers):
    app.config['ADMIN_PASSWORD'] = None
    resp = client.get('/admin/calendar-enhanced', headers=auth_headers)
    assert resp.status_code == 403


def test_hashed_admin_password(app, client):
    import base64
    from werkzeug.security import generate_password_hash

    app.config['ADMIN_PASSWORD'] = generate_password_hash('hunter2')
    token = base64.b64encode(b'admin:hunter2').decode('ascii')
    resp = client.get('/admin/calendar-enhanced', headers={'Authorization': f'Basic {token}'})
    assert resp.status_code == 200


def test_settings_page_lists_mappings(client, auth_headers, mapper):
    mapper.add_mapping('Meeting', 'https://cdn.test/meeting.png', '#3366ff')
    resp = client.get('/admin/calendar-enhanced', headers=auth_headers)
    assert resp.status_code == 200
    body = resp.get_data(as_text=True)
    assert 'value="Meeting"' in body
    assert 'value="#3366ff"' in body
    assert 'https://cdn.test/meeting.png' in body
    # One blank row to add a new category.
    assert 'name="mappings-1-category"' in body


def test_save_is_partial_success(client, auth_headers, mapper):
    resp = client.post(
        '/admin/calendar-enhanced',
        data=_form(
            ('Meeting', 'https://cdn.test/meeting.png', '3366ff'),
            ('', 'https://cdn.test/orphan.png', ''),
            ('Nothing', '', ''),
            ('Holiday', '', '#0f0'),
            ('', '', ''),
        ),
        headers=auth_headers,
        follow_redirects=True,
    )
    assert resp.status_code == 200
    body = resp.get_data(as_text=True)
    assert 'Settings saved.' in body
    assert '2 row(s) were skipped' in body

    table = mapper.get_mappings()
    assert [e.category for e in table] == ['Meeting', 'Holiday']
    assert table.get('meeting').color == '#3366ff'
    assert table.get('Holiday').image_ref == ''


def test_save_general_fallback_and_countdown(client, auth_headers, mapper):
    client.post(
        '/admin/calendar-enhanced',
        data=_form(general_fallback='https://cdn.test/general.png', countdown=False),
        headers=auth_headers,
    )
    assert mapper.get_general_fallback() == 'https://cdn.test/general.png'
    assert mapper.show_countdown_subline() is False


def test_save_invalidates_client_payload(client, auth_headers):
    client.post(
        '/admin/calendar-enhanced',
        data=_form(('Meeting', '', '#f00')),
        headers=auth_headers,
    )
    payload = client.get('/calendar-enhanced/config.json').get_json()
    assert payload['categoryColors'] == {'Meeting': '#f00'}
