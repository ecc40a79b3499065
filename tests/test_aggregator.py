import math
import unittest

from fluidwatch.events import Aggregation, EventAggregator, aggregate, balance_trend, is_valid_volume

from tests.helpers import event, scenario_events


class TestEventAggregator(unittest.TestCase):

    def test_empty_list(self):
        self.assertEqual(aggregate([]), Aggregation())
        self.assertFalse(aggregate([]).has_events)

    def test_sensor_output_keeps_latest_reading_only(self):
        events = [
            event("output", "sensor", 50, 0),
            event("output", "sensor", 30, 10),
            event("output", "sensor", 80, 20),
        ]
        agg = aggregate(events)
        self.assertEqual(agg.output_sensor_total, 80)
        self.assertEqual(agg.output_sensor_latest, 80)

    def test_latest_is_by_timestamp_not_list_order(self):
        events = [
            event("output", "sensor", 80, 20),
            event("output", "sensor", 50, 0),
            event("output", "sensor", 30, 10),
        ]
        self.assertEqual(aggregate(events).output_sensor_total, 80)

    def test_equal_timestamps_prefer_later_entry(self):
        events = [event("output", "sensor", 10, 5), event("output", "sensor", 12, 5)]
        self.assertEqual(aggregate(events).output_sensor_total, 12)

    def test_intake_always_sums(self):
        events = [
            event("intake", "sensor", 10, 0),
            event("intake", "sensor", 20, 5),
            event("intake", "manual", 5, 3),
        ]
        agg = aggregate(events)
        self.assertEqual(agg.intake_sensor_total, 30)
        self.assertEqual(agg.intake_manual_total, 5)
        self.assertEqual(agg.intake_sensor_latest, 20)
        self.assertEqual(agg.intake_manual_latest, 5)

    def test_manual_output_sums(self):
        events = [event("output", "manual", 100, 0), event("output", "manual", 150, 30)]
        agg = aggregate(events)
        self.assertEqual(agg.output_manual_total, 250)
        self.assertEqual(agg.output_manual_latest, 150)

    def test_invalid_volumes_are_dropped(self):
        events = [
            event("intake", "manual", 100, 0),
            event("intake", "manual", -40, 1),
            event("intake", "manual", 0, 2),
            event("intake", "manual", math.nan, 3),
            event("intake", "manual", math.inf, 4),
            event("output", "sensor", 60, 5),
            event("output", "sensor", math.nan, 9),
        ]
        agg = aggregate(events)
        self.assertEqual(agg.intake_manual_total, 100)
        self.assertEqual(agg.intake_manual_latest, 100)
        self.assertEqual(agg.output_sensor_total, 60)

    def test_repeated_calls_identical(self):
        events = scenario_events()
        aggregator = EventAggregator()
        self.assertEqual(aggregator.aggregate(events), aggregator.aggregate(events))

    def test_scenario_subtotals(self):
        agg = aggregate(scenario_events())
        self.assertEqual(agg.intake_sensor_total, 400)
        self.assertEqual(agg.intake_manual_total, 500)
        self.assertEqual(agg.intake_sensor_latest, 300)
        self.assertEqual(agg.output_sensor_total, 25)
        self.assertEqual(agg.output_manual_total, 10)
        self.assertEqual(agg.intake_total, 900)
        self.assertEqual(agg.output_total, 35)

    def test_is_valid_volume(self):
        self.assertTrue(is_valid_volume(0.1))
        self.assertTrue(is_valid_volume("12.5"))
        self.assertFalse(is_valid_volume(None))
        self.assertFalse(is_valid_volume("abc"))
        self.assertFalse(is_valid_volume(0))


class TestBalanceTrend(unittest.TestCase):

    def test_running_sum_in_time_order(self):
        events = [
            event("output", "manual", 50, 20),
            event("intake", "manual", 200, 0),
            event("intake", "sensor", 100, 10),
        ]
        points = balance_trend(events)
        self.assertEqual([p.volume_ml for p in points], [200, 100, -50])
        self.assertEqual([p.cumulative_balance_ml for p in points], [200, 300, 250])

    def test_limit_keeps_last_points(self):
        events = [event("intake", "manual", 10, i) for i in range(30)]
        points = balance_trend(events, limit=5)
        self.assertEqual(len(points), 5)
        self.assertEqual(points[-1].cumulative_balance_ml, 300)

    def test_skips_invalid_volumes(self):
        points = balance_trend([event("intake", "manual", -1, 0), event("intake", "manual", 5, 1)])
        self.assertEqual(len(points), 1)


if __name__ == "__main__":
    unittest.main()
