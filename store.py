"""
Data access for the profiles, products and cart tables.

Each function runs a single statement and commits it on its own. Any
SQLAlchemy failure rolls the session back and surfaces as StoreError.
"""

from sqlalchemy.exc import SQLAlchemyError

from model import db, CartLine, Product, Profile, seed_products

PROFILE_FIELDS = ('name', 'email', 'password', 'phone', 'location', 'farmingtype', 'description')
PRODUCT_FIELDS = ('name', 'productname', 'priceperkg_l', 'amountkg_l', 'description')


class StoreError(Exception):
    """A persistence operation failed."""


def _store_message(exc):
    # DBAPI errors carry the driver's message on .orig
    orig = getattr(exc, 'orig', None)
    return str(orig) if orig is not None else str(exc)


def _commit(row):
    try:
        db.session.add(row)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreError(_store_message(e)) from e
    return row


def init_store():
    """Create missing tables and seed the sample products."""
    try:
        db.create_all()
        return seed_products()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreError(_store_message(e)) from e


def add_product(product):
    row = _commit(Product(**{field: product.get(field) for field in PRODUCT_FIELDS}))
    return row.id


def get_all_products():
    try:
        return Product.query.order_by(Product.id).all()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreError(_store_message(e)) from e


def add_to_cart(productname, price):
    _commit(CartLine(productname=productname, price=price))


def get_cart():
    try:
        return CartLine.query.order_by(CartLine.id).all()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreError(_store_message(e)) from e


def remove_from_cart(productname):
    # zero matching rows is still a success
    try:
        CartLine.query.filter_by(productname=productname).delete(synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreError(_store_message(e)) from e


def add_profile(profile):
    _commit(Profile(**{field: profile.get(field) for field in PROFILE_FIELDS}))
