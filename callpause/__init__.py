"""
callpause - agent pause coordination and auto-unpause scheduling for
Asterisk call-center queues.
"""
