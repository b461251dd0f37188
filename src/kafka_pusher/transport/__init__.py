"""Message delivery."""

from .producer import Producer, ProducerStats, StdoutSender, TransportError

__all__ = ['Producer', 'ProducerStats', 'StdoutSender', 'TransportError']
