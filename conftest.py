"""Pytest configuration: absl flags must be parsed before absltest helpers run."""
from absl import flags


def pytest_configure(config):
  del config
  if not flags.FLAGS.is_parsed():
    flags.FLAGS.mark_as_parsed()
