"""Worker-wide core helpers."""
SERVICE_NAME = "worker"
APPLICATION_NAME = "Worker"
