"""Remote virtual filesystem for hosts on a Tailscale tailnet."""
