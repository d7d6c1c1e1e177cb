"""Google Cloud wrappers: credentials, Vision file analysis, speech relay and text-to-speech."""
