"""
Unit tests for product set management.
"""

import pytest
from livestage.exceptions import BusinessLogicError, NotFoundError, UnauthorizedError
from livestage.models import ProductSet, ProductSetProduct, ProductSetState
from livestage.services import product_set_service as service
from livestage.services import product_set_state_service as state_service
from livestage.services.catalog_service import create_product


def _order(session, product_set_id):
    session.expire_all()
    return [
        (entry.id, entry.position)
        for entry in session.query(ProductSetProduct).filter_by(product_set_id=product_set_id)
        .order_by(ProductSetProduct.position).all()
    ]


class TestSlugs:
    """Tests for slug generation."""

    def test_slugify(self):
        assert service.slugify('My Product Set Name') == 'my-product-set-name'
        assert service.slugify('  Black Friday!! 2024 ') == 'black-friday-2024'

    def test_slugify_fallback(self):
        assert service.slugify('@#$%').startswith('product-set-')

    def test_unique_slug_gets_suffix(self, session, brand):
        service.create_product_set(session, brand.id, {'name': 'Weekly Drop'})
        second = service.create_product_set(session, brand.id, {'name': 'Weekly Drop'})
        third = service.create_product_set(session, brand.id, {'name': 'Weekly Drop'})

        assert second.slug == 'weekly-drop-1'
        assert third.slug == 'weekly-drop-2'

    def test_name_exists(self, session, brand, other_brand):
        service.create_product_set(session, brand.id, {'name': 'Weekly Drop'})

        assert service.product_set_name_exists(session, 'weekly drop', brand.id) is True
        assert service.product_set_name_exists(session, 'Weekly Drop', other_brand.id) is False
        assert service.product_set_name_exists(session, '', brand.id) is False


class TestProductSetCrud:
    """Tests for creating, listing and deleting product sets."""

    def test_create_requires_name(self, session, brand):
        with pytest.raises(BusinessLogicError):
            service.create_product_set(session, brand.id, {'name': '  '})

    def test_create_with_products(self, session, product_set, products):
        assert [e.product_id for e in product_set.entries] == [p.id for p in products]
        assert [e.position for e in product_set.entries] == [1, 2, 3]

    def test_create_with_foreign_product_rolls_back(self, session, brand, other_brand):
        foreign = create_product(session, other_brand.id, {'name': 'Foreign', 'original_price_cents': 100})

        with pytest.raises(NotFoundError):
            service.create_product_set_with_products(session, brand.id, {'name': 'Bad'}, [foreign.id])

        assert session.query(ProductSet).filter_by(brand_id=brand.id).count() == 0

    def test_get_is_brand_scoped(self, session, product_set_id, other_brand):
        with pytest.raises(NotFoundError):
            service.get_product_set(session, other_brand.id, product_set_id)

    def test_get_by_slug(self, session, brand, product_set):
        found = service.get_product_set_by_slug(session, brand.id, 'friday-live')
        assert found.id == product_set.id

        with pytest.raises(NotFoundError):
            service.get_product_set_by_slug(session, brand.id, 'missing')

    def test_paginated_listing(self, session, brand):
        for i in range(5):
            service.create_product_set(session, brand.id, {'name': f'Set {i}', 'notes': 'rings' if i == 3 else None})

        page = service.list_product_sets_paginated(session, brand.id, page=1, per_page=2)
        assert page['total'] == 5
        assert len(page['product_sets']) == 2
        assert page['has_more'] is True

        last = service.list_product_sets_paginated(session, brand.id, page=3, per_page=2)
        assert len(last['product_sets']) == 1
        assert last['has_more'] is False

        search = service.list_product_sets_paginated(session, brand.id, search_query='RINGS')
        assert [ps.name for ps in search['product_sets']] == ['Set 3']

    def test_update(self, session, brand, product_set):
        updated = service.update_product_set(session, product_set, {'name': 'Saturday Live', 'notes': None})

        assert updated.name == 'Saturday Live'
        assert updated.notes is None

    def test_duplicate(self, session, brand, product_set_id):
        original = service.get_product_set(session, brand.id, product_set_id)
        original.entries[0].featured_name = 'Hoops (Live Special)'
        session.commit()

        copy = service.duplicate_product_set(session, brand.id, product_set_id)

        assert copy.name == 'Copy of Friday Live'
        assert copy.slug == 'copy-of-friday-live'
        assert len(copy.entries) == 3
        assert copy.entries[0].featured_name == 'Hoops (Live Special)'
        assert {e.id for e in copy.entries}.isdisjoint(
            {e.id for e in service.get_product_set(session, brand.id, product_set_id).entries}
        )

    def test_delete_removes_entries_and_state(self, session, brand, product_set_id):
        state_service.jump_to_product(session, product_set_id, 1)
        product_set = service.get_product_set(session, brand.id, product_set_id)

        service.delete_product_set(session, product_set)

        assert session.query(ProductSetProduct).count() == 0
        assert session.query(ProductSetState).count() == 0


class TestEntries:
    """Tests for adding, removing and ordering entries."""

    def test_add_appends_at_next_position(self, session, brand, product_set, products):
        extra = create_product(session, brand.id, {'name': 'Charm', 'original_price_cents': 1500})

        entry = service.add_product_to_product_set(session, product_set, extra.id)

        assert entry.position == 4
        assert service.get_next_position(session, product_set.id) == 5

    def test_add_duplicate_product_rejected(self, session, product_set, products):
        with pytest.raises(BusinessLogicError):
            service.add_product_to_product_set(session, product_set, products[0].id)

    def test_add_foreign_product_rejected(self, session, product_set, other_brand):
        foreign = create_product(session, other_brand.id, {'name': 'Foreign', 'original_price_cents': 100})

        with pytest.raises(NotFoundError):
            service.add_product_to_product_set(session, product_set, foreign.id)

    def test_remove_renumbers(self, session, product_set_id, entry_ids):
        entry = session.get(ProductSetProduct, entry_ids[0])

        service.remove_product_from_product_set(session, entry)

        assert _order(session, product_set_id) == [(entry_ids[1], 1), (entry_ids[2], 2)]

    def test_remove_live_entry_nulls_pointer(self, session, product_set_id, entry_ids):
        state_service.jump_to_product(session, product_set_id, 2)
        state_service.cycle_product_image(session, product_set_id, 'next')

        service.remove_product_from_product_set(session, session.get(ProductSetProduct, entry_ids[1]))

        session.expire_all()
        state = state_service.get_product_set_state(session, product_set_id)
        assert state is not None
        assert state.current_product_set_product_id is None
        assert state.current_image_index == 0

    def test_remove_other_entry_keeps_pointer(self, session, product_set_id, entry_ids):
        state_service.jump_to_product(session, product_set_id, 3)

        service.remove_product_from_product_set(session, session.get(ProductSetProduct, entry_ids[0]))

        session.expire_all()
        state = state_service.get_product_set_state(session, product_set_id)
        assert state.current_product_set_product_id == entry_ids[2]
        assert state_service.serialize_state(state)['current_position'] == 2

    def test_reorder(self, session, product_set_id, entry_ids):
        new_order = [entry_ids[2], entry_ids[0], entry_ids[1]]

        count = service.reorder_products(session, product_set_id, new_order)

        assert count == 3
        assert service.get_current_product_order(session, product_set_id) == new_order

    def test_reorder_rejects_duplicates(self, session, product_set_id, entry_ids):
        with pytest.raises(BusinessLogicError) as exc_info:
            service.reorder_products(session, product_set_id, [entry_ids[0], entry_ids[0]])
        assert exc_info.value.payload['error'] == 'duplicate_ids'

    def test_reorder_rejects_foreign_entries(self, session, brand, product_set_id, entry_ids, products):
        other = service.create_product_set_with_products(session, brand.id, {'name': 'Other'}, [products[0].id])

        with pytest.raises(BusinessLogicError) as exc_info:
            service.reorder_products(session, product_set_id, [other.entries[0].id])
        assert exc_info.value.payload['error'] == 'invalid_product_set_product_ids'

    def test_reorder_rejects_partial_order(self, session, product_set_id, entry_ids):
        before = _order(session, product_set_id)

        with pytest.raises(BusinessLogicError) as exc_info:
            service.reorder_products(session, product_set_id, [entry_ids[2], entry_ids[1]])

        assert exc_info.value.payload['error'] == 'invalid_product_set_product_ids'
        assert _order(session, product_set_id) == before

    def test_reorder_missing_product_set(self, session):
        with pytest.raises(NotFoundError):
            service.reorder_products(session, 999, [])

    def test_renumber_closes_gaps(self, session, product_set_id, entry_ids):
        session.query(ProductSetProduct).filter_by(id=entry_ids[2]).update({'position': 9})
        session.commit()

        assert service.renumber_product_set_products(session, product_set_id) == 1
        assert [p for _, p in _order(session, product_set_id)] == [1, 2, 3]

    def test_adjacent_entries(self, session, product_set_id):
        adjacent = service.get_adjacent_product_set_products(session, product_set_id, 1, window=1)

        assert [e.position for e in adjacent] == [1, 2]


class TestUndo:
    """Tests for remove/restore undo support."""

    def test_remove_and_restore_middle_entry(self, session, product_set_id, entry_ids):
        undo = service.get_product_set_product_for_undo(session, entry_ids[1])
        service.remove_product_from_product_set_silent(session, session.get(ProductSetProduct, entry_ids[1]))
        assert len(service.get_current_product_order(session, product_set_id)) == 2

        restored = service.restore_product_to_product_set(session, undo)

        order = _order(session, product_set_id)
        assert [p for _, p in order] == [1, 2, 3]
        assert order[1][0] == restored.id
        assert restored.product_id == undo['product_id']

    def test_undo_data_for_missing_entry(self, session):
        assert service.get_product_set_product_for_undo(session, 999) is None


class TestShareTokens:
    """Tests for public share links."""

    def test_token_roundtrip(self, product_set_id):
        token = service.generate_share_token(product_set_id)
        assert service.verify_share_token(token) == product_set_id

    def test_tampered_token_rejected(self, product_set_id):
        token = service.generate_share_token(product_set_id)
        with pytest.raises(UnauthorizedError):
            service.verify_share_token(token[:-2] + 'xx')

    def test_expired_token_rejected(self, app, product_set_id, monkeypatch):
        token = service.generate_share_token(product_set_id)
        monkeypatch.setitem(app.config, 'SHARE_TOKEN_MAX_AGE', -1)
        with pytest.raises(UnauthorizedError):
            service.verify_share_token(token)
