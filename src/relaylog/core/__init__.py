"""relaylog.core - event log, record model, signature, store and config."""
