"""Restaurant point-of-sale core: tables, orders, cash register and sync."""
