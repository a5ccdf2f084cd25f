from contact_relay.prometheus import RelayMetrics


def test_relay_metrics_counters():
    metrics = RelayMetrics()

    metrics.inc_sent("contact")
    metrics.inc_sent(None)
    metrics.inc_error("support")
    metrics.inc_rejected("spam_rejected")
    metrics.inc_archived()
    metrics.inc_rate_limited()

    output = metrics.generate_latest()
    assert b'relay_sent_total{direction="contact"} 1.0' in output
    assert b'relay_sent_total{direction="direct"} 1.0' in output
    assert b'relay_errors_total{direction="support"} 1.0' in output
    assert b'relay_rejected_total{reason="spam_rejected"} 1.0' in output
    assert b"relay_archived_total 1.0" in output
    assert b"relay_rate_limited_total 1.0" in output


def test_instances_do_not_share_registries():
    first = RelayMetrics()
    second = RelayMetrics()

    first.inc_sent("contact")

    assert b'relay_sent_total{direction="contact"}' not in second.generate_latest()
