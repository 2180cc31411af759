"""
channels — Delivery backends.

    sms_gateway — SMSProvider interface with Twilio and simulated backends

Providers send one message per call and raise on failure. Isolation of
failures across recipients lives in alerts.fanout.
"""
