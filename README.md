# cabbage

Building blocks for a service that talks to a banking partner over webhooks:

- `cabbage.config` – typed settings read from the environment and an optional env file.
- `cabbage.logger` – structured JSON or console logging with bound context fields and an
  in-process error-reporting scope; `NoOpLogger` discards everything.
- `cabbage.middleware` – WSGI middleware giving each request its own logger and request ID.
- `cabbage.webhooks` – webhook domain types, ports and `WebhookManager` / `WebhookService`.
- `cabbage.verification` – WSGI middleware checking the signature of incoming deliveries.
- `cabbage.banking` – the `Consumer` type and `ConsumerManager`.
- `cabbage.dto` – wire representations of webhooks and consumers.
- `cabbage.processor` – `UpwardliProcessor` for incoming events and the subscription topics.
- `cabbage.jobs` – `fake_job`, a job that only logs that it ran.

Install with `pip install .`; the only runtime dependency is `python-dotenv`.

## Configuration

```python
from cabbage.config import load

config = load("config.env", None)
print(config.env, config.local, config.is_production())
```

`load(env_file, environ)` reads the env file if it exists (otherwise it prints
`Failed to load .env file` and carries on), builds a `Config` and runs
`validate` on it. Values already in the environment win over the file. With
`environ=None` the file's values are added to `os.environ`; with a mapping, the
mapping is used and `os.environ` is left alone.

`load_from_env(environ)` builds a `Config` straight from a mapping (or
`os.environ`). `ENV` defaults to `DEVELOPMENT`; a value ending in `-LOCAL`, such
as `STAGING-LOCAL`, sets `local=True` and keeps only the part before the first
dash. `is_production()` is true when `env == "PRODUCTION"`.

The nested settings are `DatabaseConfig` (`DB_USER`, `DB_ENDPOINT`, `DB_PORT`,
`DB_PASSWORD`), `AwsConfig` (`AWS_ACCESS_KEY_ID`, `AWS_SECRET_ACCESS_KEY`,
`AWS_REGION`), `PlaidConfig` (`PLAID_*`) and `BankingConfig` (`UPWARDLI_*`).
`SENTRY_DSN`, `INTER_SERVICE_SECRET` and `CLIENT_JWT_TOKEN_SECRET` are read too.
`port`, `BankingConfig.base_url` and `BankingConfig.webhook_url` are not read from
the environment and stay empty. `validate` only checks that it was given a
`Config`.

## Logging

```python
import sys
from cabbage.logger import LoggerConfig, create_logger

logger = create_logger(
    LoggerConfig(environment="DEVELOPMENT", service_name="cabbage", level="debug"),
    sys.stdout,
)
request_logger = logger.with_request_id("req-1").with_fields(path="/me/upwardli/webhooks")
request_logger.info("Request started")
logger.close()
```

`create_logger(config, stream)` writes to `stream` (standard output by default).
The level is one of `debug`, `info`, `warn`, `error`, `dpanic`, `panic`, `fatal`
(lower or upper case; empty means `info`); anything else raises `ValueError`.
Output is one JSON object per line, or a coloured tab-separated line when
`local=True`. Each level and message is sampled per second: the first 100 lines
are kept, then every 100th.

Every line carries `service` and `environment`. `with_fields`, `with_user_id` and
`with_request_id` return new loggers with extra fields and leave the original
untouched. `fatal` writes the line, flushes and raises `SystemExit(1)`.

When `sentry_dsn` is set (it must look like `https://<key>@<host>/<project>`, or
`ValueError` is raised), `logger.reporter` holds an in-process scope: tags,
user, the last 100 breadcrumbs and a list of captured `events`. `warn` adds a
breadcrumb, `error` and `capture_exception` record an event. Nothing is sent
anywhere; the events only stay in memory. `fields_to_map` turns log fields into
plain data, rendering exceptions as strings.

`NoOpLogger` has the same methods, does nothing, and counts calls in `dropped`.

## Request logging middleware

```python
from cabbage.middleware import USER_ID_KEY, request_logging_middleware

app = request_logging_middleware(logger, wsgi_app)
```

The user ID must already be in the WSGI environment under `USER_ID_KEY`; a
request without it raises `LookupError`. The middleware reuses an incoming
`X-Request-ID` header or generates a UUID, adds it to the response headers
unless the application set one, logs `Request started`, adds a breadcrumb, and
after the body has been sent logs `Request completed` with `status_code`,
`duration` and `duration_ms`. The level comes from `log_level_from_status`:
`error` for 5xx, `warn` for 4xx, `info` otherwise.

Inside the wrapped application, `logger_from_environ(environ)` returns the
request logger (or a `NoOpLogger`) and `request_id_from_environ(environ)` the
request ID (or `""`).

## Webhooks

`WebhookManager(logger, client, repo, provider)` combines a `SubscriptionClient`
with a `Repository` (both protocols); `WebhookService(logger, repo, client, provider)`
offers the same operations. `Provider` is `APRIL` or `UPWARDLI`.

- `create_webhook(endpoint, topic)` registers with the client, finds the new
  registration among `client.get_all_webhooks()` and stores it;
- `create_webhooks(endpoint, topics)` does that per topic and raises one
  `WebhookError` naming every topic that failed;
- `get_webhooks()` lists the stored webhooks of the manager's provider;
- `delete_webhook(webhook_id)` deletes at the client first, then soft-deletes in
  the repository.

Failures are raised as `WebhookError`.

## Verifying incoming webhooks

```python
from cabbage.verification import webhook_verification_middleware

app = webhook_verification_middleware(verifier, logger, wsgi_app)
```

`verifier.verify(message, signature)` must return a bool. The middleware reads
the body, restores it for the application, parses the `Upwardli-Signature`
header (`t=<timestamp>,v1=<signature>`) and checks `v1` against
`signed_payload(t, body)`. A body that cannot be read, a malformed header, a
missing `t` or `v1`, or a failed check is answered with `400 Bad Request` and
`{"error": "..."}`. `parse_signature_header` raises `SignatureError` on bad input.

## Banking consumers

`ConsumerManager(repo).save_consumer(consumer)` passes a `Consumer` to
`repo.save_banking_consumer`.

## DTOs and event processing

`UpwardliWebhookDTO.from_dict` and `UpwardliConsumerDTO.from_dict` build DTOs
from decoded JSON, raising `ValueError` on fields of the wrong type; `to_domain()`
gives a `Webhook` (tagged `Provider.UPWARDLI`) or a `Consumer`.
`webhook_to_response(webhook)` gives a `WebhookResponse` whose `to_dict()` uses
camel-case keys and RFC 3339 times.

`UpwardliProcessor(logger, client).process(body, headers)` decodes an
`UpwardliWebhookEvent`, calls `client.get_entity_info(event.resource_path)` and,
for `Consumer.Created` events, decodes the entity and prints the resulting
`Consumer`. `resource_path` is never read from the payload, so it is empty
unless set otherwise. `ALL_SUBSCRIPTION_TOPICS` lists every known topic.

## What this package does not do

It has no command to start, no HTTP server or router, no database storage, no
HTTP client for the banking partner and no job scheduler. The repositories,
subscription clients, entity clients and signature verifiers are protocols that
the application supplies, and the error-reporting scope never sends events off
the process.