import logging
import os

import pandas as pd

from ping_exporter.analysis.base_analyzer import BaseAnalyzer
from ping_exporter.analysis.plot_utils import plot_rtt_histogram, plot_rtt_timeseries

logger = logging.getLogger("PingExporter.RTTAnalyzer")


class RTTAnalyzer(BaseAnalyzer):
    """
    Offline analysis of a recorded session: packet loss, descriptive RTT
    statistics and plots, written next to the input file.
    """
    def __init__(self, input_path, plots=True):
        super().__init__(input_path)
        self.plots = plots

    def analyze(self):
        logger.info("Starting RTT analysis...")

        loss_df = self.calculate_packet_loss()
        loss_df.to_csv(os.path.join(self.output_dir, 'packet_loss.csv'), index=False)

        success_df = self.df[(self.df['status'] == 'success') & (self.df['rtt_ms'].notnull())]
        if success_df.empty:
            logger.warning("No successful probes found. Skipping RTT statistics.")
            return {'packet_loss': loss_df, 'descriptive_stats': None}

        stats_df = self.calculate_descriptive_stats(success_df)
        stats_df.to_csv(os.path.join(self.output_dir, 'descriptive_stats.csv'))

        if self.plots:
            plot_dir = os.path.join(self.output_dir, 'plots')
            plot_rtt_timeseries(self.df, plot_dir)
            plot_rtt_histogram(success_df, plot_dir)

        logger.info("RTT analysis complete.")
        return {'packet_loss': loss_df, 'descriptive_stats': stats_df}

    def calculate_packet_loss(self):
        """Packet loss per target, counting every non-success outcome as lost."""
        logger.info("--- Packet Loss Calculation ---")
        records = []
        for target, group in self.df.groupby('target_ip'):
            total_probes = len(group)
            non_success = int((group['status'] != 'success').sum())
            loss_pct = (non_success / total_probes) * 100 if total_probes else 0.0
            logger.info(f"Target: {target} -> Packet Loss: {loss_pct:.2f}% ({non_success}/{total_probes})")
            records.append({
                'target_ip': target,
                'total_probes': total_probes,
                'non_success': non_success,
                'packet_loss_percent': round(loss_pct, 3),
            })
        return pd.DataFrame(records)

    def calculate_descriptive_stats(self, df):
        logger.info("--- Descriptive RTT Statistics (ms) ---")
        stats_df = df.groupby('target_ip')['rtt_ms'].describe(percentiles=[0.5, 0.9, 0.99])
        logger.info("\n" + stats_df.to_string())
        return stats_df
