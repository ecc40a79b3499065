import unittest

from fluidwatch.severity import KdigoStatus, classify_kdigo


class TestKdigoClassifier(unittest.TestCase):

    def test_not_evaluable(self):
        for args in ((100, 0, 10), (100, None, 10), (100, 70, 0), (100, 70, -1)):
            with self.subTest(args=args):
                state = classify_kdigo(*args)
                self.assertEqual(state.status, KdigoStatus.NOT_EVALUABLE)
                self.assertIsNone(state.stage)
                self.assertEqual(state.diuresis_ml_kg_h, 0.0)

    def test_non_finite_inputs_not_evaluable(self):
        nan, inf = float("nan"), float("inf")
        for args in ((100, nan, 10), (100, inf, 10), (nan, 70, 10), (100, 70, nan), (100, 70, inf)):
            with self.subTest(args=args):
                state = classify_kdigo(*args)
                self.assertEqual(state.status, KdigoStatus.NOT_EVALUABLE)
                self.assertEqual(state.diuresis_ml_kg_h, 0.0)

    def test_observing_under_six_hours(self):
        state = classify_kdigo(0, 70, 5)
        self.assertEqual(state.status, KdigoStatus.OBSERVING)
        self.assertIsNone(state.stage)
        self.assertEqual(state.label, "In observation")

    def test_observing_still_reports_diuresis(self):
        state = classify_kdigo(140, 70, 4)
        self.assertAlmostEqual(state.diuresis_ml_kg_h, 0.5)

    def test_anuria_stage_3(self):
        state = classify_kdigo(0.5, 70, 13)
        self.assertEqual(state.stage, 3)
        self.assertEqual(state.label, "Stage 3 (anuria)")

    def test_low_output_12h_is_stage_2(self):
        state = classify_kdigo(300, 70, 13)
        self.assertAlmostEqual(state.diuresis_ml_kg_h, 300 / (70 * 13))
        self.assertEqual(state.stage, 2)

    def test_adequate_output_stage_0(self):
        state = classify_kdigo(2000, 70, 13)
        self.assertEqual(state.status, KdigoStatus.STAGED)
        self.assertEqual(state.stage, 0)

    def test_stage_1_between_6_and_12_hours(self):
        self.assertEqual(classify_kdigo(100, 70, 8).stage, 1)

    def test_stage_3_after_24h_below_0_3(self):
        self.assertEqual(classify_kdigo(0.2 * 70 * 25, 70, 25).stage, 3)

    def test_anuria_before_12h_is_stage_1(self):
        self.assertEqual(classify_kdigo(0, 70, 8).stage, 1)

    def test_longer_window_never_lowers_stage(self):
        for rate in (0.0, 0.1, 0.25, 0.4, 0.6):
            previous = -1
            for hours in (6, 8, 12, 18, 24, 36):
                stage = classify_kdigo(rate * 70 * hours, 70, hours).stage
                with self.subTest(rate=rate, hours=hours):
                    self.assertGreaterEqual(stage, previous)
                previous = stage

    def test_to_dict(self):
        data = classify_kdigo(2000, 70, 13).to_dict()
        self.assertEqual(data["status"], "staged")
        self.assertEqual(data["stage"], 0)
        self.assertIsNone(data["updated_at"])


if __name__ == "__main__":
    unittest.main()
