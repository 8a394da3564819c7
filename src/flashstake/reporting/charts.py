"""Chart generation using Plotly."""

from typing import List, Optional, Sequence

import plotly.graph_objects as go

from ..engine.quoting import DEFAULT_CURVE, MintCurve, quote_mint

THEME = {
    "text": "#e8eaed",
    "text_secondary": "#9aa0a6",
    "grid": "rgba(30, 33, 36, 0.8)",
    "cyan": "#00d4ff",
    "cyan_fill": "rgba(0, 212, 255, 0.12)",
    "amber": "#ffab00",
    "amber_fill": "rgba(255, 171, 0, 0.12)",
    "red": "#ff5252",
    "green": "#00e676",
}

DAY = 86_400


def apply_dark_layout(fig: go.Figure, title: str, x_title: str, y_title: str, showlegend: bool = True) -> None:
    """Apply the dark layout shared by all charts."""
    fig.update_layout(
        title={
            "text": title,
            "x": 0,
            "xanchor": "left",
            "font": {"size": 11, "color": THEME["text_secondary"], "family": "Inter, -apple-system, sans-serif"}
        },
        xaxis_title=x_title,
        yaxis_title=y_title,
        hovermode="x unified",
        template="plotly_dark",
        height=340,
        margin=dict(l=50, r=20, t=40, b=40),
        showlegend=showlegend,
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0, bgcolor="rgba(0,0,0,0)"),
        plot_bgcolor="rgba(8, 9, 10, 1)",
        paper_bgcolor="rgba(8, 9, 10, 1)",
        font={"color": THEME["text"], "family": "Inter, -apple-system, sans-serif", "size": 11},
        xaxis=dict(gridcolor=THEME["grid"], zerolinecolor=THEME["grid"]),
        yaxis=dict(gridcolor=THEME["grid"], zerolinecolor=THEME["grid"]),
    )


def create_mint_curve_chart(
    durations_days: Optional[Sequence[float]] = None,
    curve: MintCurve = DEFAULT_CURVE,
) -> go.Figure:
    """fTokens minted per whole unit of principal against lock duration."""
    if durations_days is None:
        durations_days = list(range(1, 731, 7))
    one = 10 ** curve.ftoken_decimals

    x, y = [], []
    for days in durations_days:
        seconds = int(days * DAY)
        if seconds < curve.min_duration:
            continue
        x.append(days)
        y.append(quote_mint(one, seconds, curve=curve) / one)

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=x,
        y=y,
        name='fTokens per unit',
        mode='lines',
        line=dict(color=THEME["cyan"], width=2),
        fill='tozeroy',
        fillcolor=THEME["cyan_fill"]
    ))
    fig.add_vline(x=curve.seconds_per_year / DAY, line_dash="dot", line_color=THEME["text_secondary"])
    apply_dark_layout(fig, "Mint Curve", "Duration (days)", "fTokens per unit principal", showlegend=False)
    return fig


def create_redemption_chart(
    records: List[dict],
    stake_id: Optional[int] = None,
) -> go.Figure:
    """Cumulative principal released and fTokens burned for one stake's calls."""
    if stake_id is None and records:
        stake_id = records[0]['stake_id']
    rows = [r for r in records if r['stake_id'] == stake_id]

    x = [r['elapsed_fraction'] * 100 for r in rows]
    withdrawn = [
        r['total_staked_withdrawn'] / r['staked_amount'] * 100 if r['staked_amount'] else 0.0
        for r in rows
    ]
    burned = [
        r['total_ftoken_burned'] / r['ftokens_to_user'] * 100 if r['ftokens_to_user'] else 0.0
        for r in rows
    ]

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=x,
        y=withdrawn,
        name='Principal withdrawn',
        mode='lines+markers',
        line=dict(color=THEME["green"], width=2, shape='hv')
    ))
    fig.add_trace(go.Scatter(
        x=x,
        y=burned,
        name='fTokens burned',
        mode='lines+markers',
        line=dict(color=THEME["amber"], width=2, dash='dot', shape='hv')
    ))
    apply_dark_layout(fig, f"Stake {stake_id} Redemption Path", "Elapsed (%)", "% of stake")
    return fig
