import unittest

from playedit.schemas.comparisons import ComparisonChoice
from playedit.schemas.rankings import PositionShift
from playedit.services.batch_rank import BatchRankError, BatchRankSession

NEW = ComparisonChoice.NEW_ITEM
EXISTING = ComparisonChoice.EXISTING_ITEM


class TestBatchRankSession(unittest.TestCase):
    def test_three_games(self) -> None:
        batch = BatchRankSession("owner-1", [1, 2, 3])
        self.assertTrue(batch.in_first_pair)
        self.assertEqual((batch.current_item_id, batch.current_opponent_id), (1, 2))

        batch.apply(NEW)
        self.assertEqual(batch.rank_order.item_ids(), [1, 2])
        self.assertEqual((batch.current_item_id, batch.current_opponent_id), (3, 1))

        batch.apply(EXISTING)
        self.assertEqual(batch.current_opponent_id, 2)
        batch.apply(NEW)

        self.assertTrue(batch.is_complete)
        self.assertEqual(batch.rank_order.item_ids(), [1, 3, 2])
        self.assertEqual(
            batch.pending_shifts(),
            [
                PositionShift(item_id=1, new_position=1),
                PositionShift(item_id=2, new_position=3),
                PositionShift(item_id=3, new_position=2),
            ],
        )

    def test_first_pair_loser_goes_second(self) -> None:
        batch = BatchRankSession("owner-1", [1, 2])
        batch.apply(EXISTING)
        self.assertTrue(batch.is_complete)
        self.assertEqual(batch.rank_order.item_ids(), [2, 1])

    def test_undo_steps_back_through_answers_then_placements(self) -> None:
        batch = BatchRankSession("owner-1", [1, 2, 3, 4])
        batch.apply(NEW)       # 1 beats 2
        batch.apply(EXISTING)  # 3 vs 1
        self.assertEqual(batch.current_opponent_id, 2)

        self.assertTrue(batch.undo())
        self.assertEqual((batch.current_item_id, batch.current_opponent_id), (3, 1))

        self.assertTrue(batch.undo())
        self.assertTrue(batch.in_first_pair)
        self.assertEqual(batch.placed_count, 0)

        self.assertFalse(batch.undo())
        self.assertFalse(batch.can_undo)

    def test_undo_after_completion_unplaces_last_game(self) -> None:
        batch = BatchRankSession("owner-1", [1, 2, 3])
        batch.apply(NEW)  # 1 beats 2
        batch.apply(NEW)  # 3 beats 1
        self.assertTrue(batch.is_complete)
        self.assertEqual(batch.rank_order.item_ids(), [3, 1, 2])

        batch.undo()
        self.assertFalse(batch.is_complete)
        self.assertEqual(batch.current_item_id, 3)
        self.assertEqual(batch.rank_order.item_ids(), [1, 2])

    def test_single_game_is_placed_without_comparison(self) -> None:
        batch = BatchRankSession("owner-1", [5])
        self.assertTrue(batch.is_complete)
        self.assertEqual(batch.pending_shifts(), [PositionShift(item_id=5, new_position=1)])

    def test_empty_and_invalid_input(self) -> None:
        self.assertTrue(BatchRankSession("owner-1", []).is_complete)
        with self.assertRaises(BatchRankError):
            BatchRankSession("owner-1", [1, 1])

    def test_apply_after_completion_raises(self) -> None:
        batch = BatchRankSession("owner-1", [1, 2])
        batch.apply(NEW)
        with self.assertRaises(BatchRankError):
            batch.apply(NEW)

    def test_positions_are_contiguous_for_any_answers(self) -> None:
        items = list(range(1, 21))
        batch = BatchRankSession("owner-1", items)
        flip = False
        while not batch.is_complete:
            batch.apply(NEW if flip else EXISTING)
            flip = not flip

        order = batch.rank_order
        self.assertEqual(sorted(order.item_ids()), items)
        self.assertEqual(order.positions, list(range(1, 21)))


if __name__ == "__main__":
    unittest.main()
