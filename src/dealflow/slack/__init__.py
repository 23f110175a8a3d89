"""Slack notifications for the human approval queue."""

from dealflow.slack.blocks import build_agreement_blocks, build_approval_blocks
from dealflow.slack.client import ApprovalNotifier

__all__ = ["ApprovalNotifier", "build_agreement_blocks", "build_approval_blocks"]
