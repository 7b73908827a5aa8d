"""Rule acknowledgement gateway service."""
