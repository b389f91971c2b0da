"""HTTP gateway for token-protected uploads with timed retention."""
