"""SMS Wallet Command Service

Lets users without a smartphone or data plan hold and move a stablecoin
through plain SMS text commands:
- Receives inbound SMS webhooks
- Parses free text into typed commands
- Runs wallet, transfer, cosigner and payment-request workflows
- Replies to the sender and notifies the other parties
"""

__version__ = "1.0.0"
