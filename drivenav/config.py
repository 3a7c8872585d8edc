"""Configuration settings for drivenav."""

CONFIG = {
    # Map
    "default_map_center": (52.520798, 13.409408),  # Berlin
    "random_waypoint_spread": 0.02,  # degrees around the map center, per axis
    "prefetch_radius": 2000,  # meters around the route start
    # Routing backend
    "osrm_url": "https://router.project-osrm.org",
    "osrm_profile": "driving",
    "osrm_timeout": 10,  # seconds
    "heading_tolerance": 45,  # degrees - OSRM bearing range for waypoints with a heading
    # Device positioning
    "gps_poll_interval": 1,  # seconds
    "gps_timeout": 10,  # seconds per termux-location call
    # Route simulation
    "simulation_speed_factor": 2.0,
    "simulation_notification_interval": 0.5,  # seconds
    # Guidance
    "map_matching_radius": 30,  # meters - fixes further from the route are deviations
    "destination_arrival_radius": 15,  # meters
    "maneuver_announce_distances": (1000, 300, 50),  # meters before a maneuver
    # Dynamic rerouting
    "reroute_poll_interval": 10 * 60,  # seconds
    "reroute_min_time_difference": 1,  # seconds
    "reroute_min_time_difference_pct": 0.1,  # of remaining duration
    # Traffic refresh on the active route
    "traffic_update_interval": 10 * 60,  # seconds
    # Notification policy
    "deviation_event_threshold": 3,  # consecutive deviation events before acting
    # Voice guidance
    "voice_rate": 150,  # words per minute
    "voice_language": None,  # BCP 47 code, e.g. "de-DE"; None follows the device locale
    # Debug GUI
    "debug_http_port": 8080,
    "debug_ws_port": 8765,
}
