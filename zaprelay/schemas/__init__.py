from zaprelay.schemas.webhook import UpsertBatch, WebhookData, WebhookEnvelope, WebhookKey

__all__ = ["UpsertBatch", "WebhookData", "WebhookEnvelope", "WebhookKey"]
