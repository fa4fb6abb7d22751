from decimal import Decimal

import pytest

from storefront import auth, crud, errors, models, orders, schemas


def line(product_id, quantity=None, unit_price=None):
    return schemas.OrderLineCreate(product_id=product_id, quantity=quantity, unit_price=unit_price)


def test_create_order_derives_total(db_session, make_user, make_product):
    user = make_user()
    p1 = make_product("Bata", "1000.00")
    p2 = make_product("Cosmetiquero", "500.00")

    order = orders.create_order(
        db_session, user.id, [line(p1.id, 2, Decimal("1000")), line(p2.id, 1, Decimal("500"))]
    )
    assert order.id is not None
    assert order.user_id == user.id
    assert order.created_at is not None
    assert len(order.lines) == 2
    assert order.total == Decimal("2500.00")


def test_create_order_defaults_quantity_and_price(db_session, make_user, make_product):
    user = make_user()
    product = make_product()

    order = orders.create_order(db_session, user.id, [line(product.id)])
    assert order.lines[0].quantity == 1
    assert order.lines[0].unit_price == Decimal("0")
    assert order.total == Decimal("0.00")


def test_create_order_rejects_empty_lines(db_session, make_user):
    user = make_user()
    with pytest.raises(errors.ValidationError):
        orders.create_order(db_session, user.id, [])
    with pytest.raises(errors.ValidationError):
        orders.create_order(db_session, user.id, "not a list")


def test_create_order_unknown_product_writes_nothing(db_session, make_user, make_product):
    user = make_user()
    product = make_product()
    with pytest.raises(errors.ValidationError):
        orders.create_order(db_session, user.id, [line(product.id, 1, Decimal("1")), line(9999, 1, Decimal("1"))])
    assert db_session.query(models.Order).count() == 0
    assert db_session.query(models.OrderLine).count() == 0


def test_repeated_product_in_one_order_is_accepted(db_session, make_user, make_product):
    user = make_user()
    product = make_product()
    order = orders.create_order(
        db_session, user.id, [line(product.id, 1, Decimal("10")), line(product.id, 2, Decimal("10"))]
    )
    assert order.total == Decimal("30.00")


def test_price_snapshot_survives_catalog_change(db_session, make_user, make_product, identity_for):
    user = make_user()
    product = make_product(price="100.00")
    order = orders.create_order(db_session, user.id, [line(product.id, 1, Decimal("100"))])

    crud.update_product(db_session, product.id, schemas.ProductUpdate(price=Decimal("200")))

    fetched = orders.get_order(db_session, identity_for(user), order.id)
    assert fetched.lines[0].unit_price == Decimal("100.00")
    assert fetched.total == Decimal("100.00")


def test_get_order_of_another_user_is_not_found(db_session, make_user, make_product, identity_for):
    owner = make_user()
    other = make_user()
    product = make_product()
    order = orders.create_order(db_session, owner.id, [line(product.id, 1, Decimal("5"))])

    with pytest.raises(errors.NotFound):
        orders.get_order(db_session, identity_for(other), order.id)
    with pytest.raises(errors.NotFound):
        orders.delete_order(db_session, identity_for(other), order.id)
    assert orders.get_order(db_session, identity_for(owner), order.id).id == order.id


def test_admin_sees_and_deletes_any_order(db_session, make_user, make_product, identity_for):
    owner = make_user()
    admin = make_user(role=auth.RoleName.ADMIN.value)
    product = make_product()
    order = orders.create_order(db_session, owner.id, [line(product.id, 2, Decimal("7.50"))])

    assert orders.get_order(db_session, identity_for(admin), order.id).total == Decimal("15.00")
    found, total_count, _ = orders.list_orders(db_session, identity_for(admin))
    assert total_count == 1 and found[0].id == order.id

    orders.delete_order(db_session, identity_for(admin), order.id)
    assert db_session.query(models.Order).count() == 0
    # lines go with the order through the foreign key cascade
    assert db_session.query(models.OrderLine).count() == 0


def test_list_orders_scopes_non_admin(db_session, make_user, make_product, identity_for):
    alice = make_user()
    bob = make_user()
    product = make_product()
    orders.create_order(db_session, alice.id, [line(product.id, 1, Decimal("1"))])
    orders.create_order(db_session, bob.id, [line(product.id, 1, Decimal("2"))])

    found, total_count, filters = orders.list_orders(db_session, identity_for(alice))
    assert total_count == 1
    assert [o.user_id for o in found] == [alice.id]
    assert filters == {"user_id": alice.id, "limit": None, "offset": 0}

    # asking for yourself explicitly is fine
    found, _, _ = orders.list_orders(db_session, identity_for(alice), target_user_id=alice.id)
    assert len(found) == 1

    with pytest.raises(errors.Forbidden):
        orders.list_orders(db_session, identity_for(alice), target_user_id=bob.id)


def test_list_orders_admin_filter_and_pagination(db_session, make_user, make_product, identity_for):
    admin = make_user(role=auth.RoleName.ADMIN.value)
    alice = make_user()
    bob = make_user()
    product = make_product()
    created = [orders.create_order(db_session, alice.id, [line(product.id, 1, Decimal(i))]).id for i in range(3)]
    orders.create_order(db_session, bob.id, [line(product.id, 1, Decimal("9"))])

    found, total_count, filters = orders.list_orders(db_session, identity_for(admin))
    assert total_count == 4

    found, total_count, filters = orders.list_orders(
        db_session, identity_for(admin), target_user_id=alice.id, limit=2, offset=1
    )
    assert total_count == 3
    # newest first
    assert [o.id for o in found] == list(reversed(created))[1:3]
    assert filters == {"user_id": alice.id, "limit": 2, "offset": 1}


def test_create_order_for_missing_user(db_session, make_product):
    product = make_product()
    with pytest.raises(errors.ValidationError, match="no longer exists"):
        orders.create_order(db_session, 9999, [line(product.id, 1, Decimal("1"))])
