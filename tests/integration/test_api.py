"""
Integration tests for the HTTP endpoints.
"""

import pytest


@pytest.fixture
def ids(brand, product_set_id, entry_ids, products, session):
    """Plain ids, safe to use after requests close the session."""
    data = {
        'brand_slug': brand.slug,
        'product_set_id': product_set_id,
        'entry_ids': list(entry_ids),
        'product_ids': [p.id for p in products],
    }
    session.commit()
    return data


def _base(ids):
    return f"/b/{ids['brand_slug']}"


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json()['database'] == 'connected'

    def test_health_pubsub(self, client):
        response = client.get('/health/pubsub')

        assert response.status_code == 200
        assert response.get_json()['status'] == 'ok'

    def test_metrics(self, client):
        response = client.get('/metrics')

        assert response.status_code == 200
        assert b'http_requests_total' in response.data


class TestBrandScoping:

    def test_unknown_brand_is_404_json(self, client, ids):
        response = client.get('/b/nobody/product-sets')

        assert response.status_code == 404
        assert response.get_json()['message'] == 'Brand not found.'

    def test_other_brand_cannot_read_product_set(self, client, ids, other_brand):
        response = client.get(f"/b/other/product-sets/{ids['product_set_id']}")

        assert response.status_code == 404


class TestProductSetEndpoints:

    def test_list(self, client, ids):
        response = client.get(f"{_base(ids)}/product-sets?per_page=10")

        data = response.get_json()
        assert response.status_code == 200
        assert data['total'] == 1
        assert data['product_sets'][0]['product_count'] == 3
        assert data['has_more'] is False

    def test_create_and_show(self, client, ids):
        response = client.post(f"{_base(ids)}/product-sets", json={
            'name': 'Sunday Live', 'product_ids': ids['product_ids'][:2]
        })
        assert response.status_code == 201
        created = response.get_json()
        assert created['slug'] == 'sunday-live'
        assert [e['position'] for e in created['entries']] == [1, 2]

        shown = client.get(f"{_base(ids)}/product-sets/{created['id']}").get_json()
        assert shown['name'] == 'Sunday Live'

    def test_create_requires_name(self, client, ids):
        response = client.post(f"{_base(ids)}/product-sets", json={})

        assert response.status_code == 400
        assert response.get_json()['status'] == 'error'

    def test_update_and_delete(self, client, ids):
        url = f"{_base(ids)}/product-sets/{ids['product_set_id']}"

        assert client.patch(url, json={'name': 'Renamed'}).get_json()['name'] == 'Renamed'
        assert client.delete(url).status_code == 200
        assert client.get(url).status_code == 404

    def test_duplicate(self, client, ids):
        response = client.post(f"{_base(ids)}/product-sets/{ids['product_set_id']}/duplicate")

        assert response.status_code == 201
        assert response.get_json()['name'] == 'Copy of Friday Live'

    def test_remove_and_restore_entry(self, client, ids):
        base = f"{_base(ids)}/product-sets/{ids['product_set_id']}"

        removed = client.delete(f"{base}/entries/{ids['entry_ids'][0]}").get_json()
        assert removed['undo']['position'] == 1
        assert client.get(base).get_json()['product_count'] == 2

        restored = client.post(f"{base}/restore", json=removed['undo'])
        assert restored.status_code == 201
        entries = client.get(base).get_json()['entries']
        assert [e['product_id'] for e in entries] == ids['product_ids']

    def test_reorder(self, client, ids):
        new_order = list(reversed(ids['entry_ids']))

        response = client.post(
            f"{_base(ids)}/product-sets/{ids['product_set_id']}/reorder", json={'entry_ids': new_order}
        )

        assert response.status_code == 200
        assert response.get_json()['order'] == new_order

    def test_reorder_rejects_bad_ids(self, client, ids):
        response = client.post(
            f"{_base(ids)}/product-sets/{ids['product_set_id']}/reorder", json={'entry_ids': [12345]}
        )

        assert response.status_code == 400
        assert response.get_json()['error'] == 'invalid_product_set_product_ids'

    def test_reorder_rejects_partial_order(self, client, ids):
        base = f"{_base(ids)}/product-sets/{ids['product_set_id']}"

        response = client.post(f"{base}/reorder", json={'entry_ids': ids['entry_ids'][:0:-1]})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'invalid_product_set_product_ids'
        assert [e['id'] for e in client.get(base).get_json()['entries']] == ids['entry_ids']

    def test_share_link(self, client, ids):
        share = client.post(f"{_base(ids)}/product-sets/{ids['product_set_id']}/share").get_json()

        response = client.get(f"/share/{share['token']}")
        data = response.get_json()
        assert response.status_code == 200
        assert data['name'] == 'Friday Live'
        assert 'notes' not in data

    def test_invalid_share_link(self, client):
        assert client.get('/share/not-a-token').status_code == 403


class TestPresetEndpoints:

    def test_create_list_delete(self, client, ids):
        base = f"{_base(ids)}/message-presets"

        created = client.post(base, json={'message_text': 'Smile', 'color': 'green'})
        assert created.status_code == 201
        preset_id = created.get_json()['id']

        assert [p['id'] for p in client.get(base).get_json()['message_presets']] == [preset_id]
        assert client.delete(f"{base}/{preset_id}").status_code == 200
        assert client.get(base).get_json()['message_presets'] == []

    def test_invalid_color(self, client, ids):
        response = client.post(f"{_base(ids)}/message-presets", json={'message_text': 'Hi', 'color': 'pink'})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'invalid_color'


class TestLiveEndpoints:

    def test_controller_page_prerenders(self, client, ids):
        response = client.get(f"{_base(ids)}/product-sets/{ids['product_set_id']}/controller")

        assert response.status_code == 200
        assert b'Friday Live' in response.data
        assert b'/live/controller/events' in response.data

    def test_host_page(self, client, ids):
        response = client.get(f"{_base(ids)}/product-sets/{ids['product_set_id']}/host")

        assert response.status_code == 200
        assert b'/live/host/events' in response.data

    def test_action_then_state(self, client, ids):
        base = f"{_base(ids)}/product-sets/{ids['product_set_id']}"

        reply = client.post(f"{base}/live/events", json={
            'event': 'jump_to_product', 'params': {'position': 2}
        }).get_json()
        assert reply['ok'] is True

        state = client.get(f"{base}/state").get_json()
        assert state['current_position'] == 2
        assert state['current_product_set_product_id'] == ids['entry_ids'][1]

    def test_rejected_action_is_notice(self, client, ids):
        response = client.post(f"{_base(ids)}/product-sets/{ids['product_set_id']}/live/events", json={
            'event': 'next_product'
        })
        reply = response.get_json()
        assert response.status_code == 200
        assert reply['ok'] is True

        response = client.post(f"{_base(ids)}/product-sets/{ids['product_set_id']}/live/events", json={
            'event': 'cycle_image', 'params': {'direction': 'up'}
        })
        assert response.get_json()['notice']['code'] == 'invalid_direction'

    def test_unknown_role(self, client, ids):
        response = client.get(f"{_base(ids)}/product-sets/{ids['product_set_id']}/live/audience/events")

        assert response.status_code == 404

    def test_event_stream(self, client, ids):
        response = client.get(
            f"{_base(ids)}/product-sets/{ids['product_set_id']}/live/host/events", buffered=False
        )

        assert response.status_code == 200
        assert response.mimetype == 'text/event-stream'
        chunks = iter(response.response)
        assert next(chunks).startswith(b'retry:')
        assert next(chunks).startswith(b'event: state')
        response.close()
