"""Prize-allocation engine for instant-win promotions."""
