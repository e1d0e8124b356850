"""HTTP routers exposed by the gateway-metrics exporter."""
