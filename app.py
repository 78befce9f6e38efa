from flask import Flask, g, jsonify, request, send_from_directory
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash
from werkzeug.serving import make_server
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
import datetime
import json
import logging
import os
import signal
import sys
import threading
import time

from model import db
import store
from store import StoreError
from validation import ValidationError, validate_product

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')

# Prometheus metrics
REQUEST_COUNT = Counter('farmconnect_requests_total', 'Total requests', ['method', 'endpoint', 'status'])
REQUEST_DURATION = Histogram('farmconnect_request_duration_seconds', 'Request duration')
PRODUCT_COUNT = Counter('farmconnect_products_total', 'Total products created', ['operation'])
CART_LINE_COUNT = Counter('farmconnect_cart_lines_total', 'Cart line operations', ['operation'])

# Headers the landing page and API responses always carry
SECURITY_HEADERS = {
    'Content-Security-Policy': "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
                               "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
                               "object-src 'none';script-src 'self';script-src-attr 'none';"
                               "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests",
    'Cross-Origin-Opener-Policy': 'same-origin',
    'Origin-Agent-Cluster': '?1',
    'Referrer-Policy': 'no-referrer',
    'Strict-Transport-Security': 'max-age=15552000; includeSubDomains',
    'X-Content-Type-Options': 'nosniff',
    'X-DNS-Prefetch-Control': 'off',
    'X-Download-Options': 'noopen',
    'X-Frame-Options': 'SAMEORIGIN',
    'X-Permitted-Cross-Domain-Policies': 'none',
}


# Structured logging
class JSONFormatter(logging.Formatter):
    EXTRA_FIELDS = ('endpoint', 'status_code', 'product_id', 'product_name', 'error', 'port')

    def format(self, record):
        log_entry = {
            'timestamp': datetime.datetime.now(datetime.timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'service': 'farmconnect',
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for field in self.EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        return json.dumps(log_entry, default=str)


logger = logging.getLogger('farmconnect')


def configure_logging(log_dir=None):
    logger.setLevel(logging.INFO)

    # Remove any existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = JSONFormatter()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        error_handler = logging.FileHandler(os.path.join(log_dir, 'error.log'))
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        logger.addHandler(error_handler)

        combined_handler = logging.FileHandler(os.path.join(log_dir, 'combined.log'))
        combined_handler.setFormatter(formatter)
        logger.addHandler(combined_handler)


def _env_flag(name):
    return os.getenv(name, '').strip().lower() in ('1', 'true', 'yes', 'on')


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _internal_error(exc):
    body = {'error': 'Internal server error'}
    if g.get('expose_details'):
        body['details'] = str(exc)
    return jsonify(body), 500


def create_app(config=None):
    app = Flask(__name__, static_folder=TEMPLATES_DIR, static_url_path='')
    app.config['PORT'] = int(os.getenv('PORT', 3000))
    app.config['APP_ENV'] = os.getenv('APP_ENV', 'production')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv('DATABASE_URL', 'sqlite:///farmconnect.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['HASH_PROFILE_PASSWORDS'] = _env_flag('HASH_PROFILE_PASSWORDS')
    app.config['LOG_DIR'] = os.getenv('LOG_DIR') or None
    if config:
        app.config.update(config)

    configure_logging(app.config['LOG_DIR'])
    db.init_app(app)
    CORS(app)

    with app.app_context():
        seeded = store.init_store()
    logger.info("Store ready", extra={'endpoint': 'startup'})
    if seeded:
        PRODUCT_COUNT.labels('seed').inc(seeded)
        logger.info(f"Seeded {seeded} sample products", extra={'endpoint': 'startup'})

    @app.before_request
    def start_timer():
        g.start_time = time.time()
        g.expose_details = app.config['APP_ENV'] == 'development'

    @app.after_request
    def finish_request(response):
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        endpoint = request.url_rule.rule if request.url_rule else 'unmatched'
        REQUEST_COUNT.labels(request.method, endpoint, str(response.status_code)).inc()
        REQUEST_DURATION.observe(time.time() - g.get('start_time', time.time()))
        return response

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception("Unhandled error", extra={'endpoint': request.path, 'error': str(e), 'status_code': 500})
        return jsonify({'error': 'Something went wrong!'}), 500

    register_routes(app)
    return app


def register_routes(app):

    # landing page
    @app.route('/')
    def index():
        return send_from_directory(app.static_folder, 'MainPage.html')

    @app.route('/submit-profile', methods=['POST'])
    def submit_profile():
        data = _json_body()
        logger.info("Profile submission", extra={'endpoint': '/submit-profile'})

        password = data.get('password')
        if app.config['HASH_PROFILE_PASSWORDS'] and isinstance(password, str) and password:
            data = dict(data, password=generate_password_hash(password))

        try:
            store.add_profile(data)
        except StoreError as e:
            logger.error("Error submitting profile", extra={'endpoint': '/submit-profile', 'error': str(e), 'status_code': 500})
            return jsonify({'error': str(e)}), 500

        logger.info("Profile submitted", extra={'endpoint': '/submit-profile', 'status_code': 200})
        return jsonify({'message': 'Profile submitted successfully!'})

    # create products
    @app.route('/products', methods=['POST'])
    def create_product():
        try:
            product = validate_product(_json_body())
        except ValidationError as e:
            logger.warning("Product submission rejected", extra={'endpoint': '/products', 'error': ', '.join(e.fields), 'status_code': 400})
            return jsonify({'errors': e.errors}), 400

        try:
            product_id = store.add_product(product)
        except StoreError as e:
            logger.error("Error adding product", extra={'endpoint': '/products', 'product_name': product['productname'], 'error': str(e), 'status_code': 500})
            return _internal_error(e)

        PRODUCT_COUNT.labels('create').inc()
        logger.info(f"Product added with ID: {product_id}", extra={'endpoint': '/products', 'product_id': product_id, 'product_name': product['productname'], 'status_code': 201})
        return jsonify({
            'message': 'Product added successfully!',
            'productId': product_id
        }), 201

    # get all products
    @app.route('/products', methods=['GET'])
    def get_products():
        try:
            products = store.get_all_products()
        except StoreError as e:
            logger.error("Error fetching products", extra={'endpoint': '/products', 'error': str(e), 'status_code': 500})
            return _internal_error(e)

        logger.info(f"Retrieved {len(products)} products from database", extra={'endpoint': '/products', 'status_code': 200})
        return jsonify([p.to_dict() for p in products])

    @app.route('/add-to-cart', methods=['POST'])
    def add_to_cart():
        data = _json_body()
        productname = data.get('productname')
        try:
            store.add_to_cart(productname, data.get('price'))
        except StoreError as e:
            logger.error("Error adding product to cart", extra={'endpoint': '/add-to-cart', 'error': str(e), 'status_code': 500})
            return jsonify({'error': str(e)}), 500

        CART_LINE_COUNT.labels('add').inc()
        logger.info("Product added to cart", extra={'endpoint': '/add-to-cart', 'product_name': productname, 'status_code': 200})
        return jsonify({'message': 'Product added to cart!'})

    @app.route('/cart', methods=['GET'])
    def get_cart():
        try:
            lines = store.get_cart()
        except StoreError as e:
            logger.error("Error fetching cart", extra={'endpoint': '/cart', 'error': str(e), 'status_code': 500})
            return jsonify({'error': str(e)}), 500
        return jsonify([line.to_dict() for line in lines])

    @app.route('/cart/<path:productname>', methods=['DELETE'])
    def remove_from_cart(productname):
        try:
            store.remove_from_cart(productname)
        except StoreError as e:
            logger.error("Error removing product from cart", extra={'endpoint': '/cart/<path:productname>', 'product_name': productname, 'error': str(e), 'status_code': 500})
            return jsonify({'error': str(e)}), 500

        CART_LINE_COUNT.labels('remove').inc()
        logger.info("Product removed from cart", extra={'endpoint': '/cart/<path:productname>', 'product_name': productname, 'status_code': 200})
        return jsonify({'message': 'Product removed from cart!'})

    # health check
    @app.route('/health')
    def health():
        return "OK", 200

    # Prometheus metrics endpoint
    @app.route('/metrics')
    def metrics():
        resp = generate_latest()
        return resp, 200, {'Content-Type': CONTENT_TYPE_LATEST}


def build_server(app):
    server = make_server('0.0.0.0', app.config['PORT'], app, threaded=True)
    # non-daemon worker threads are joined on close, so in-flight requests finish
    server.daemon_threads = False
    return server


def serve(app, server=None):
    if server is None:
        server = build_server(app)
    port = server.server_port

    def shutdown(signum, frame):
        logger.info("Shutdown signal received", extra={'endpoint': 'shutdown'})
        threading.Thread(target=server.shutdown).start()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info(f"Server is running on http://localhost:{port}", extra={'port': port})
    server.serve_forever()
    logger.info("Server shutdown complete")


def main():
    try:
        app = create_app()
    except StoreError as e:
        logger.error("Database connection error", extra={'endpoint': 'startup', 'error': str(e)})
        sys.exit(1)
    serve(app)
    sys.exit(0)


if __name__ == "__main__":
    main()
