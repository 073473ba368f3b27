"""
saslntlm SASL Module

Mechanism base class and a reference exchange driver.
"""

from saslntlm.sasl.mechanism import SaslMechanism
from saslntlm.sasl.exchange import run_exchange

__all__ = [
    "SaslMechanism",
    "run_exchange",
]
