"""Dialogflow CX intent-detection client."""

from libs.dialogflow.client import DialogflowClient, IntentReply

__all__ = ["DialogflowClient", "IntentReply"]
