"""Real-time infrastructure — Redis medium, update bus, WebSocket.

Learn: Events flow through two paths:
1. Outbox dispatcher → UpdateBus.publish → Redis PUBLISH (live delivery)
2. UpdateBus.store_event → capped Redis list (catch-up after reconnect)

The WebSocket handler subscribes to the channels and forwards messages to
dashboard tabs. All of it is optional: without Redis, the app still serves
every read and write.
"""
