"""Console output in the format of the classic ping utility."""


def _ms(value):
    return "n/a" if value is None else f"{value:.3f}ms"


def format_banner(label, address):
    return f"PING {label} ({address}):"


def format_sample(sample):
    if sample.rtt_ms is None:
        return f"Request timeout for icmp_seq={sample.sequence}"
    return (f"{sample.nbytes} bytes from {sample.source_address or sample.target_address}: "
            f"icmp_seq={sample.sequence} time={sample.rtt_ms:.3f} ms")


def format_summary(summary):
    stats = summary.statistics
    return "\n".join([
        f"\n--- {summary.target_address} ping statistics ---",
        f"{stats.sent} packets transmitted, {stats.received} packets received, "
        f"{stats.loss_percent:g}% packet loss",
        f"round-trip min/avg/max/stddev = {_ms(stats.min_rtt)}/{_ms(stats.mean_rtt)}/"
        f"{_ms(stats.max_rtt)}/{_ms(stats.stddev_rtt)}",
    ])


def print_sample(sample):
    print(format_sample(sample), flush=True)


def print_summary(summary):
    print(format_summary(summary), flush=True)
