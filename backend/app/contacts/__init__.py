"""
contacts — Opt-in SMS recipients.

Sub-modules:
    models     — Contact and ContactStatus
    phone      — phone number canonicalisation
    directory  — contact persistence and the recipient snapshot used by fanout
"""
