"""
Geographic helpers for trip pricing.

Great-circle distance between coordinates and matching of pickup/dropoff
locations against service areas (city, zipcode or polygon).
"""
import math

from shapely.geometry import Point, Polygon

from models import Area, AreaType, LatLng, Location

# Earth's radius in miles
EARTH_RADIUS_MILES = 3959.0


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in miles between two coordinates."""
    to_rad = math.pi / 180.0
    d_lat = (lat2 - lat1) * to_rad
    d_lng = (lng2 - lng1) * to_rad
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1 * to_rad) * math.cos(lat2 * to_rad) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_MILES * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def route_distance_miles(points: list[Location]) -> float:
    """Sum of great-circle legs along pickup -> stops -> dropoff."""
    return sum(
        haversine_miles(a.lat, a.lng, b.lat, b.lng)
        for a, b in zip(points, points[1:])
    )


def is_point_in_polygon(lat: float, lng: float, polygon: list[LatLng]) -> bool:
    """
    Check whether a coordinate lies strictly inside a polygon.

    Points exactly on an edge are outside. Polygons with fewer than
    3 points contain nothing.
    """
    if len(polygon) < 3:
        return False
    # Shapely uses (x, y) = (lng, lat)
    shape = Polygon([(point.lng, point.lat) for point in polygon])
    return shape.contains(Point(lng, lat))


def _area_values(area: Area) -> list[str]:
    if area.value is None:
        return []
    if isinstance(area.value, str):
        return [area.value]
    return list(area.value)


def is_location_in_area(location: Location, area: Area) -> bool:
    """
    Check whether a location falls inside an area.

    Args:
        location: Pickup, dropoff or stop
        area: The area to test against

    Returns:
        True if the location matches the area's city, zipcode or polygon
    """
    if area.type == AreaType.CITY:
        if not location.city:
            return False
        city = location.city.strip().lower()
        return any(city == v.strip().lower() for v in _area_values(area))

    if area.type == AreaType.ZIPCODE:
        if not location.zipcode:
            return False
        zipcode = location.zipcode.strip()
        return any(zipcode == v.strip() for v in _area_values(area))

    if area.type == AreaType.POLYGON:
        if not location.has_coordinates:
            return False
        return is_point_in_polygon(location.lat, location.lng, area.polygon)

    return False
