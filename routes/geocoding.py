"""Geocoding proxy so browsers can search places without hitting Nominatim directly."""
from flask import Blueprint, current_app, jsonify, request

from utils.geocoding import GeocodingError, reverse_geocode, search_places
from utils.http import json_error

geocoding_bp = Blueprint("geocoding", __name__)


@geocoding_bp.route("/search", methods=["GET"])
def search():
    query = (request.args.get("q") or "").strip()
    if not query:
        return json_error("Search query is required", 400, key="error")
    try:
        results = search_places(query)
    except GeocodingError:
        current_app.logger.exception("Geocoding search failed", extra={"query": query})
        return json_error("Location search failed. Please try again or use GPS location.", 500, key="error")
    return jsonify({"success": True, "results": results})


@geocoding_bp.route("/reverse", methods=["GET"])
def reverse():
    lat = (request.args.get("lat") or "").strip()
    lon = (request.args.get("lon") or "").strip()
    if not lat or not lon:
        return json_error("Latitude and longitude are required", 400, key="error")
    try:
        address = reverse_geocode(lat, lon)
    except GeocodingError:
        current_app.logger.exception("Reverse geocoding failed", extra={"lat": lat, "lon": lon})
        return json_error("Address lookup failed", 500, key="error")
    return jsonify({"success": True, "address": address})
