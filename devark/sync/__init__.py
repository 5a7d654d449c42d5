"""Upload of sanitised sessions to the DevArk backend."""
