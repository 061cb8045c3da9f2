from . import cultures, grows, history, inventory, spawn

routers = [
    cultures.router,
    grows.router,
    history.router,
    inventory.router,
    spawn.router,
]
