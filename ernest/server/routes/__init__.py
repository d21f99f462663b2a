"""HTTP routers mounted by :func:`ernest.server.app.create_app`."""
