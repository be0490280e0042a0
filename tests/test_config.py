import os
import unittest
from unittest.mock import patch

from enclotto.config import DEFAULT_FEE_PER_TICKET, LotterySettings
from enclotto.lottery.commitment import DEFAULT_COMMITMENT_KEY


@patch("enclotto.config.load_dotenv")
class TestLotterySettingsFromEnv(unittest.TestCase):
    def test_defaults(self, mock_load_dotenv):
        with patch.dict(os.environ, {}, clear=True):
            settings = LotterySettings.from_env()
        mock_load_dotenv.assert_called_once()
        self.assertEqual(settings.fee_per_ticket, DEFAULT_FEE_PER_TICKET)
        self.assertEqual(settings.winner_share_numerator, 80)
        self.assertEqual(settings.share_denominator, 100)
        self.assertEqual(settings.commitment_key, DEFAULT_COMMITMENT_KEY)
        self.assertIsNone(settings.rpc_url)

    def test_overrides(self, mock_load_dotenv):
        env = {
            "ENTRY_FEE_PER_TICKET": "500",
            "WINNER_SHARE_NUMERATOR": "9",
            "SHARE_DENOMINATOR": "10",
            "COMMITMENT_KEY": "  s3cret ",
            "ETH_RPC_URL": "http://node.local:8545",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = LotterySettings.from_env()
        self.assertEqual(settings.fee_per_ticket, 500)
        self.assertEqual(settings.winner_share_numerator, 9)
        self.assertEqual(settings.share_denominator, 10)
        self.assertEqual(settings.commitment_key, b"s3cret")
        self.assertEqual(settings.rpc_url, "http://node.local:8545")

    def test_non_integer_fee(self, mock_load_dotenv):
        with patch.dict(os.environ, {"ENTRY_FEE_PER_TICKET": "0.01"}, clear=True):
            with self.assertRaises(ValueError):
                LotterySettings.from_env()

    def test_share_above_denominator(self, mock_load_dotenv):
        env = {"WINNER_SHARE_NUMERATOR": "101"}
        with patch.dict(os.environ, env, clear=True):
            with self.assertRaises(ValueError):
                LotterySettings.from_env()


class TestLotterySettingsValidation(unittest.TestCase):
    def test_rejects_zero_fee(self):
        with self.assertRaises(ValueError):
            LotterySettings(fee_per_ticket=0)

    def test_rejects_zero_denominator(self):
        with self.assertRaises(ValueError):
            LotterySettings(winner_share_numerator=0, share_denominator=0)

    def test_rejects_empty_key(self):
        with self.assertRaises(ValueError):
            LotterySettings(commitment_key=b"")

    def test_whole_pool_to_winner_allowed(self):
        settings = LotterySettings(winner_share_numerator=1, share_denominator=1)
        self.assertEqual(settings.winner_share_numerator, 1)


if __name__ == "__main__":
    unittest.main()
