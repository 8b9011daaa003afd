import logging
import os

import matplotlib.pyplot as plt
import seaborn as sns

logger = logging.getLogger("PingExporter.PlotUtils")

sns.set_theme(context='talk', style='whitegrid', palette='Set2')


def save_plot(fig, save_dir, filename, dpi=150):
    """
    Saves a matplotlib figure and closes it.

    Returns:
        str | None: The path written, or None when saving failed.
    """
    os.makedirs(save_dir, exist_ok=True)
    save_path = os.path.join(save_dir, filename)
    try:
        fig.savefig(save_path, dpi=dpi, bbox_inches='tight')
        logger.info(f"Plot saved to {save_path}")
        return save_path
    except (OSError, ValueError) as e:
        logger.error(f"Failed to save plot {filename}: {e}")
        return None
    finally:
        plt.close(fig)


def plot_rtt_timeseries(df, save_dir, filename_prefix="icmp"):
    """
    Plots RTT over time per target; lost probes are drawn as markers on the x axis.
    """
    fig, ax = plt.subplots(figsize=(16, 7))

    success = df[df['rtt_ms'].notnull()].sort_values('timestamp')
    sns.lineplot(
        data=success, x='timestamp', y='rtt_ms', hue='target_ip',
        ax=ax, linewidth=1.4, errorbar=None,
    )
    lost = df[df['rtt_ms'].isnull()]
    if not lost.empty:
        ax.scatter(lost['timestamp'], [0] * len(lost), marker='x', color='crimson', label='lost')

    ax.set_title('RTT Time Series')
    ax.set_xlabel('Timestamp')
    ax.set_ylabel('RTT (ms)')
    ax.tick_params(axis='x', rotation=30)
    if ax.get_legend_handles_labels()[1]:
        ax.legend(title='Target', frameon=True)

    fig.tight_layout()
    return save_plot(fig, save_dir, f'{filename_prefix}_rtt_timeseries.png')


def plot_rtt_histogram(df, save_dir, filename_prefix="icmp", bins=50):
    """Plots the RTT histogram of successful probes."""
    fig, ax = plt.subplots(figsize=(12, 7))

    df_plot = df[df['rtt_ms'].notnull()]
    sns.histplot(data=df_plot, x='rtt_ms', hue='target_ip', bins=bins, element='step', fill=False, ax=ax)

    ax.set_title('RTT Distribution (Histogram)')
    ax.set_xlabel('RTT (ms)')
    ax.set_ylabel('Count')
    ax.set_xlim(left=0)

    fig.tight_layout()
    return save_plot(fig, save_dir, f'{filename_prefix}_rtt_histogram.png')
