from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

SAMPLE_PRODUCTS = [
    {'name': 'Farmer John', 'productname': 'Carrots', 'priceperkg_l': 40, 'amountkg_l': 100, 'description': 'Fresh organic carrots'},
    {'name': 'Farmer Jane', 'productname': 'Apples', 'priceperkg_l': 60, 'amountkg_l': 50, 'description': 'Crisp and juicy apples'},
    {'name': 'Farmer Joe', 'productname': 'Tomatoes', 'priceperkg_l': 30, 'amountkg_l': 80, 'description': 'Ripe red tomatoes'},
]


class Profile(db.Model):
    __tablename__ = 'profiles'
    # AUTOINCREMENT keeps ids from being reused after deletes
    __table_args__ = {'sqlite_autoincrement': True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text)
    email = db.Column(db.Text)
    password = db.Column(db.Text)  # plain text unless HASH_PROFILE_PASSWORDS is set
    phone = db.Column(db.Text)
    location = db.Column(db.Text)
    farmingtype = db.Column(db.Text)
    description = db.Column(db.Text)

    def __repr__(self):
        return f'<Profile {self.name}>'


class Product(db.Model):
    __tablename__ = 'products'
    __table_args__ = {'sqlite_autoincrement': True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text)
    productname = db.Column(db.Text)
    priceperkg_l = db.Column(db.Float)
    amountkg_l = db.Column(db.Float)
    description = db.Column(db.Text)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "productname": self.productname,
            "priceperkg_l": self.priceperkg_l,
            "amountkg_l": self.amountkg_l,
            "description": self.description,
        }

    def __repr__(self):
        return f'<Product {self.productname}>'


class CartLine(db.Model):
    __tablename__ = 'cart'
    __table_args__ = {'sqlite_autoincrement': True}

    id = db.Column(db.Integer, primary_key=True)
    productname = db.Column(db.Text)  # copied from the product, not a foreign key
    price = db.Column(db.Float)  # price at the time the line was added

    def to_dict(self):
        return {"id": self.id, "productname": self.productname, "price": self.price}

    def __repr__(self):
        return f'<CartLine {self.productname}>'


def seed_products():
    """Insert the sample products when the products table is empty.

    Returns the number of rows inserted.
    """
    if Product.query.first() is not None:
        return 0
    for sample in SAMPLE_PRODUCTS:
        db.session.add(Product(**sample))
    db.session.commit()
    return len(SAMPLE_PRODUCTS)
