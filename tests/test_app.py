import logging
import signal
import threading

import pytest
import requests

import app as service
import store
from model import Product
from store import StoreError


def test_landing_page(client):
    response = client.get('/')

    assert response.status_code == 200
    assert response.mimetype == 'text/html'
    assert b'FarmConnect' in response.data
    response.close()


def test_static_assets_served_from_root(client):
    response = client.get('/cart.js')

    assert response.status_code == 200
    assert b'/add-to-cart' in response.data
    response.close()


def test_security_headers_on_every_response(client):
    response = client.get('/products')

    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['X-Frame-Options'] == 'SAMEORIGIN'
    assert "default-src 'self'" in response.headers['Content-Security-Policy']


def test_health(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.data == b'OK'


def test_metrics_count_requests(client):
    client.get('/cart')

    response = client.get('/metrics')

    assert response.status_code == 200
    assert b'farmconnect_requests_total' in response.data
    assert b'endpoint="/cart"' in response.data


def test_unexpected_error_is_generic(client, monkeypatch, caplog):
    def explode():
        raise RuntimeError('secret internals')

    monkeypatch.setattr(store, 'get_cart', explode)

    with caplog.at_level(logging.ERROR, logger='farmconnect'):
        response = client.get('/cart')

    assert response.status_code == 500
    assert response.get_json() == {'error': 'Something went wrong!'}
    assert b'secret internals' not in response.data
    assert any(r.getMessage() == 'Unhandled error' for r in caplog.records)


def test_unknown_route_keeps_404(client):
    assert client.get('/no-such-page').status_code == 404


def test_seeding_runs_once_per_database(make_app):
    make_app()
    app = make_app()

    with app.app_context():
        assert Product.query.count() == 3


def test_unopenable_store_raises(make_app, tmp_path):
    with pytest.raises(StoreError):
        make_app(SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'missing' / 'farmconnect.db'}")


def test_main_exits_nonzero_when_store_fails(monkeypatch):
    def fail():
        raise StoreError('unable to open database file')

    monkeypatch.setattr(service, 'create_app', fail)

    with pytest.raises(SystemExit) as exc_info:
        service.main()

    assert exc_info.value.code == 1


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord('farmconnect', logging.INFO, __file__, 10, 'Product added', None, None)
    record.product_id = 7
    record.endpoint = '/products'

    entry = service.JSONFormatter().format(record)

    assert '"product_id": 7' in entry
    assert '"endpoint": "/products"' in entry
    assert '"service": "farmconnect"' in entry


def test_log_dir_writes_error_and_combined_files(make_app, tmp_path):
    log_dir = tmp_path / 'logs'
    make_app(LOG_DIR=str(log_dir))

    service.logger.error('boom')
    for handler in service.logger.handlers:
        handler.flush()

    assert 'boom' in (log_dir / 'error.log').read_text()
    assert 'Store ready' in (log_dir / 'combined.log').read_text()
    assert 'Store ready' not in (log_dir / 'error.log').read_text()


def test_sigterm_drains_in_flight_request_then_stops(make_app, monkeypatch):
    handlers = {}
    monkeypatch.setattr(service.signal, 'signal', lambda signum, handler: handlers.__setitem__(signum, handler))

    started = threading.Event()
    release = threading.Event()

    def slow_cart():
        started.set()
        release.wait(5)
        return []

    monkeypatch.setattr(store, 'get_cart', slow_cart)

    app = make_app(PORT=0)
    server = service.build_server(app)
    url = f'http://127.0.0.1:{server.server_port}/cart'

    serve_thread = threading.Thread(target=service.serve, args=(app, server))
    serve_thread.start()

    result = {}

    def fetch():
        result['response'] = requests.get(url, timeout=10)

    fetch_thread = threading.Thread(target=fetch)
    fetch_thread.start()
    assert started.wait(5)

    handlers[signal.SIGTERM](signal.SIGTERM, None)

    # the server waits for the running request before it finishes closing
    serve_thread.join(0.5)
    assert serve_thread.is_alive()

    release.set()
    fetch_thread.join(5)
    serve_thread.join(5)

    assert not serve_thread.is_alive()
    assert result['response'].status_code == 200
    assert result['response'].json() == []
    with pytest.raises(requests.ConnectionError):
        requests.get(url, timeout=2)
