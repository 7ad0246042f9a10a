"""Great-circle distance helpers for proximity filters."""
import math

EARTH_RADIUS_KM = 6371


def calculate_distance(lat1, lon1, lat2, lon2):
    """Haversine distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) * math.sin(d_lat / 2) +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(d_lon / 2) * math.sin(d_lon / 2))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def parse_point(lat, lng):
    """Return (lat, lng) floats or None when either value is missing or out of range."""
    if lat in (None, "") or lng in (None, ""):
        return None
    try:
        lat_f, lng_f = float(lat), float(lng)
    except (TypeError, ValueError):
        return None
    if not (-90 <= lat_f <= 90 and -180 <= lng_f <= 180):
        return None
    return lat_f, lng_f


def within_radius(items, lat, lng, radius_km, coords=lambda item: (item.latitude, item.longitude)):
    """Filter ``items`` to those within ``radius_km``, nearest first."""
    ranked = []
    for item in items:
        item_lat, item_lng = coords(item)
        distance = calculate_distance(lat, lng, item_lat, item_lng)
        if distance <= radius_km:
            ranked.append((distance, item))
    ranked.sort(key=lambda pair: pair[0])
    return [item for _distance, item in ranked]
