"""Interactive HTML preview of a proposed route.

Usage:
    python -m drivenav --html route.html
"""

from typing import Optional

import folium
from folium import plugins

from .guidance import maneuver_road_name
from .models import Coordinates, Route
from .timeutils import format_length, format_time


def create_route_map(route: Route, start: Optional[Coordinates] = None,
                     destination: Optional[Coordinates] = None) -> folium.Map:
    """Build a folium map with the route, its maneuvers and endpoints"""
    geometry = route.geometry
    lats = [c.lat for c in geometry]
    lons = [c.lon for c in geometry]
    center = [sum(lats) / len(lats), sum(lons) / len(lons)]

    m = folium.Map(location=center, zoom_start=14)

    # Add tile options
    folium.TileLayer("OpenStreetMap", name="OpenStreetMap").add_to(m)
    folium.TileLayer("CartoDB positron", name="Light").add_to(m)
    folium.TileLayer("CartoDB dark_matter", name="Dark").add_to(m)

    summary = f"Travel Time: {format_time(route.duration_s)}, Length: {format_length(route.length_m)}"
    folium.PolyLine(
        [[c.lat, c.lon] for c in geometry],
        weight=5,
        color="blue",
        opacity=0.8,
        popup=folium.Popup(summary, max_width=250)
    ).add_to(m)

    maneuvers_group = folium.FeatureGroup(name="Maneuvers", show=True)
    for index, maneuver in enumerate(route.maneuvers):
        popup = (f"<b>{index}: {maneuver.action.name}</b><br>"
                 f"{maneuver_road_name(maneuver)}<br>"
                 f"at {format_length(maneuver.offset_m)}")
        folium.CircleMarker(
            location=[maneuver.coordinates.lat, maneuver.coordinates.lon],
            radius=5,
            color="orange",
            fill=True,
            fill_opacity=0.9,
            popup=folium.Popup(popup, max_width=200)
        ).add_to(maneuvers_group)
    maneuvers_group.add_to(m)

    start = start or route.departure
    destination = destination or route.destination
    folium.Marker(
        location=[start.lat, start.lon],
        popup="Start",
        icon=folium.Icon(color="green", icon="play")
    ).add_to(m)
    folium.Marker(
        location=[destination.lat, destination.lon],
        popup="Destination",
        icon=folium.Icon(color="red", icon="stop")
    ).add_to(m)

    folium.LayerControl().add_to(m)
    plugins.Fullscreen().add_to(m)
    m.fit_bounds([[min(lats), min(lons)], [max(lats), max(lons)]])
    return m


def save_route_html(route: Route, start: Optional[Coordinates], destination: Optional[Coordinates],
                    output_path: str):
    """Render the route preview to an HTML file"""
    m = create_route_map(route, start, destination)
    m.save(output_path)
    print(f"Route map saved to {output_path}")
