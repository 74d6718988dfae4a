"""HTTP layer: dependencies, error mapping, views and routers."""
