from .thingspeak import FeedReading, SensorSync, ThingSpeakClient, parse_feed

__all__ = ["FeedReading", "SensorSync", "ThingSpeakClient", "parse_feed"]
