"""ClamAV scanning, notification, scheduling and log repair."""
