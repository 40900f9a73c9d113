"""
pipeboard: the programmable clipboard router for terminals.

Copy and paste from any shell, hop clipboards between machines over SSH,
and park content in named slots on S3, a local directory, or the hosted
service. Slots are compressed, optionally encrypted, and expire on their
own schedule.
"""

__version__ = "0.1.0"
__author__ = "pipeboard contributors"
