"""WorkerBank shared libraries.

This package contains reusable components:
- common: configuration
- dialogflow: Dialogflow CX detectIntent client
- google: Google Cloud auth, Vision, Speech and Text-to-Speech wrappers
"""
