from unittest.mock import MagicMock, patch

from orderhub import worker


def test_unknown_mode_prints_usage(capsys):
    assert worker.main(["bogus"]) == 2
    assert "Usage" in capsys.readouterr().out


def test_consume_runs_crm_consumer():
    consumer = MagicMock()
    consumer.get_metrics.return_value = {"received": 1, "processed": 1, "requeued": 0, "dead_lettered": 0}

    with patch.object(worker, "build_crm_consumer", return_value=consumer), \
            patch.object(worker.signal, "signal") as register:
        assert worker.main(["consume"]) == 0

    consumer.run.assert_called_once()
    assert register.call_count == 2

    handler = register.call_args.args[1]
    handler(None, None)
    consumer.stop.assert_called_once()
