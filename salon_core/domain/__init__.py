"""Domain areas - entities, repositories, services and routers per area"""
