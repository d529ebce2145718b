#!/usr/bin/env python3
from app import create_app
from services.config import load_config

GEVENT_AVAILABLE = True
try:
    from gevent import pywsgi
except ImportError:
    GEVENT_AVAILABLE = False
    pywsgi = None  # type: ignore


def main() -> None:
    config = load_config()
    application = create_app(config)
    if GEVENT_AVAILABLE:
        server = pywsgi.WSGIServer((config.host, config.port), application)
        server.serve_forever()
    else:
        # Fallback: Flask dev server (single process, threaded).
        application.run(host=config.host, port=config.port, threaded=True)


if __name__ == "__main__":
    main()
