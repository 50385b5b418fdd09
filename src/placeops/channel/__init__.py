"""
Command channel: one persistent shell process, sentinel framing, heuristic verdicts.

Modules:
    channel     CommandChannel, CommandResult, ChannelState
    classifier  ResultClassifier rule table
    process     ShellProcess protocol and the subprocess spawner
"""

from placeops.channel.channel import ChannelState, CommandChannel, CommandResult
from placeops.channel.classifier import (
    ClassificationRule,
    ResultClassifier,
    Verdict,
    default_rules,
)
from placeops.channel.process import ShellProcess, subprocess_factory

__all__ = [
    "ChannelState",
    "ClassificationRule",
    "CommandChannel",
    "CommandResult",
    "ResultClassifier",
    "ShellProcess",
    "Verdict",
    "default_rules",
    "subprocess_factory",
]
