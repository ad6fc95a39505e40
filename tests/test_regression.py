from decimal import Decimal

from storefront import crud
from storefront.utils import round_amount


def test_amount_rounding_regression():
    # Guard against regressions: 2-decimal rounding half up
    assert round_amount(Decimal("2.675")) == Decimal("2.68")
    assert round_amount(Decimal("10.125")) == Decimal("10.13")


def test_order_total_uses_decimal_arithmetic(db_session, make_user, make_product, order_request):
    # 0.1 * 3 in binary floating point is 0.30000000000000004
    user = make_user()
    dime = make_product("Dime", "0.10")
    order = crud.create_order(db_session, order_request(user.id, [(dime.id, 3)]))
    assert str(order.total_price) == "0.30"
