# kubewebhook

A small library for serving Kubernetes dynamic admission webhooks from Python.
It decodes `AdmissionReview` requests (both `admission.k8s.io/v1` and
`admission.k8s.io/v1beta1`), hands a version-independent model of the review
to your webhook object, and encodes the webhook's answer in the format the API
server expects. The handler is a plain WSGI application, so it runs under any
WSGI server. It has no dependencies outside the standard library.

## Install

```
pip install kubewebhook
```

## Modules

- `kubewebhook.model` – the review model: `AdmissionReview`,
  `AdmissionReviewOp`, `AdmissionReviewVersion`, `WebhookKind`,
  `GroupVersionKind` and `GroupVersionResource`, plus the answers a webhook
  returns, `ValidatingAdmissionResponse` and `MutatingAdmissionResponse`.
  `new_admission_review_v1(ar)` and `new_admission_review_v1beta1(ar)` build an
  `AdmissionReview` from a decoded (dict) Kubernetes admission review. When the
  request has no `requestKind`/`requestResource`, its `kind`/`resource` are used;
  a missing `dryRun` counts as `False`.
- `kubewebhook.handler` – `handler_for(HandlerConfig(webhook=...))` returns a
  `WebhookHandler`. Use it as a WSGI app, or call `handle(body, path)` directly,
  which returns `(status_code, headers, body)`. A missing webhook raises
  `HandlerConfigError`. Bodies larger than 6 MiB (`MAX_REQUEST_BODY_BYTES`) and
  bodies that are empty or not a known admission review get a 400 with a plain
  text message.
- `kubewebhook.log` – the `Logger` interface, the silent `NoopLogger`, and
  `StdLogger`, which writes through the standard `logging` module (logger
  `"kubewebhook"` by default) and appends its structured fields as `key=value`.
  Contexts are plain dicts; `ctx_with_values` and `values_from_ctx` store and
  read log values on them.
- `kubewebhook.tracing` – the `Tracer` interface and `NoopTracer`, which records
  nothing and returns handlers, clients and contexts unchanged.
- `kubewebhook.metrics` – `Recorder(registry=None, review_op_buckets=None)`
  records review durations (seconds) for validating and mutating webhooks as
  histograms and warning counts as a counter, with the
  `MeasureValidatingOpData` / `MeasureMutatingOpData` records. `Registry.render()`
  returns the metrics in the Prometheus text exposition format. Without a
  registry the module-level `DEFAULT_REGISTRY` is used; registering a second
  recorder on the same registry raises `ValueError`.

## The webhook object

`handler_for` takes any object with three methods:

- `id()` – the webhook id, added to log values;
- `kind()` – the webhook kind (`WebhookKind.VALIDATING` or `WebhookKind.MUTATING`);
- `review(ctx, review)` – takes the context dict and an `AdmissionReview` and
  returns a `ValidatingAdmissionResponse` or a `MutatingAdmissionResponse`.
  Raising an exception turns into a 500 with the error text in the status.

## Example

```python
from wsgiref.simple_server import make_server

from kubewebhook.handler import HandlerConfig, handler_for
from kubewebhook.model import ValidatingAdmissionResponse, WebhookKind


class DenyAll:
    def id(self):
        return "deny-all"

    def kind(self):
        return WebhookKind.VALIDATING

    def review(self, ctx, review):
        return ValidatingAdmissionResponse(
            id=review.id,
            allowed=False,
            message=f"{review.namespace}/{review.name} denied",
        )


app = handler_for(HandlerConfig(webhook=DenyAll()))
make_server("", 8080, app).serve_forever()
```

Measuring a review:

```python
from kubewebhook.metrics import MeasureValidatingOpData, Recorder, Registry

registry = Registry()
recorder = Recorder(registry=registry)
recorder.measure_validating_webhook_review_op(
    {}, MeasureValidatingOpData(webhook_id="deny-all", duration=0.042, allowed=False)
)
print(registry.render())
```

## Responses

| Case                   | HTTP | status.code | status.status | status.message |
|------------------------|------|-------------|---------------|----------------|
| Validating allowed     | 200  | –           | –             | –              |
| Validating not allowed | 200  | 400         | Failure       | your message   |
| Mutating               | 200  | –           | –             | –              |
| Webhook error          | 500  | –           | Failure       | error text     |

Mutating answers always carry `"patchType": "JSONPatch"`, and `patch`
(base64) only when `json_patch_patch` is not empty. Warnings are only sent back
for `v1` reviews; for `v1beta1` they are dropped and a warning is logged.

## What it does not do

- It does not run mutators or validators for you or compute JSON patches: the
  webhook object you pass decides the answer and supplies the patch bytes.
- It does not serve TLS or expose a metrics endpoint. The Kubernetes API server
  only calls webhooks over TLS, so put the application behind a WSGI server or
  proxy that terminates TLS, and serve `Registry.render()` yourself.
- There is no tracing backend; only the `Tracer` interface and `NoopTracer`.

## Tests

```
pip install -e ".[test]"
pytest
```