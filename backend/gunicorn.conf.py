# Bind & workers
bind = "0.0.0.0:8000"
workers = 2  # override with env GUNICORN_WORKERS
threads = 2  # token refresh is safe under concurrency; the store serializes rotation
timeout = 60
graceful_timeout = 30
keepalive = 5

# Logs to stdout/stderr (collected by Docker); the app emits JSON lines
accesslog = "-"
errorlog = "-"
loglevel = "info"  # override with env LOG_LEVEL

# Proxy headers are handled by ProxyFix in the app (USE_PROXYFIX/PROXYFIX_HOPS);
# access tokens are bound to the client address it resolves
forwarded_allow_ips = "*"
proxy_protocol = False

wsgi_app = "blogapi:create_app()"
