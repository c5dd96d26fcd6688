"""
Screen Switch Agent: MQTT runtime agent that switches display power.

Subscribes to a single control topic, decodes on/off commands and drives the
display through an idempotent actuation gate, reconnecting with backoff when
the broker goes away.
"""
