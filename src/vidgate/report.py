"""Report rendering: the admin analytics view as markdown or HTML."""

from html import escape

from vidgate.models import AnalyticsSummary


def format_duration(seconds: float) -> str:
    """Human readable watch time: ``45s``, ``2m 5s``, ``1h 3m``."""
    total = round(seconds)
    if total < 60:
        return f"{total}s"
    if total < 3600:
        minutes, secs = divmod(total, 60)
        return f"{minutes}m {secs}s"
    hours, rest = divmod(total, 3600)
    return f"{hours}h {rest // 60}m"


class ReportBuilder:
    """Renders an AnalyticsSummary for humans."""

    def __init__(self, title: str = "Video Analytics") -> None:
        self._title = title

    def to_markdown(self, summary: AnalyticsSummary) -> str:
        """Render a summary as markdown tables."""
        lines = [
            f"# {self._title}",
            "",
            f"*Generated {summary.generated_at:%Y-%m-%d %H:%M} UTC*",
            "",
            f"- Total users: {summary.total_users}",
            f"- Total videos: {summary.total_videos}",
            f"- Total views: {summary.total_views}",
            f"- Average engagement: {summary.average_engagement:.1f}%",
            "",
            "## Videos",
            "",
        ]

        if summary.videos:
            lines.append("| Title | Views | Viewers | Avg watch | Completion | Skip | Rewatch |")
            lines.append("|---|---:|---:|---:|---:|---:|---:|")
            for v in summary.videos:
                lines.append(
                    f"| {v.title} | {v.total_views} | {v.unique_viewers} "
                    f"| {format_duration(v.average_watch_time)} | {v.completion_rate:.1f}% "
                    f"| {v.skip_rate:.1f}% | {v.rewatch_rate:.1f}% |"
                )
        else:
            lines.append("No videos yet.")
        lines.append("")

        lines.append("## Users")
        lines.append("")
        if summary.users:
            lines.append("| Email | Watched | Videos | Avg watch | Completion | Last active |")
            lines.append("|---|---:|---:|---:|---:|---|")
            for u in summary.users:
                lines.append(
                    f"| {u.email} | {u.total_videos_watched} | {u.distinct_videos} "
                    f"| {format_duration(u.average_watch_time)} | {u.completion_rate:.1f}% "
                    f"| {u.last_active:%Y-%m-%d %H:%M} |"
                )
        else:
            lines.append("No users yet.")

        return "\n".join(lines)

    def to_html(self, summary: AnalyticsSummary) -> str:
        """Render a summary as a standalone HTML page."""
        video_rows = "".join(
            f"<tr><td>{escape(v.title)}</td><td>{v.total_views}</td><td>{v.unique_viewers}</td>"
            f"<td>{format_duration(v.average_watch_time)}</td><td>{v.completion_rate:.1f}%</td>"
            f"<td>{v.skip_rate:.1f}%</td><td>{v.rewatch_rate:.1f}%</td></tr>"
            for v in summary.videos
        )
        user_rows = "".join(
            f"<tr><td>{escape(u.email)}</td><td>{u.total_videos_watched}</td>"
            f"<td>{u.distinct_videos}</td><td>{format_duration(u.average_watch_time)}</td>"
            f"<td>{u.completion_rate:.1f}%</td><td>{u.last_active:%Y-%m-%d %H:%M}</td></tr>"
            for u in summary.users
        )

        return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>{escape(self._title)}</title>
<style>
    body {{ font-family: system-ui, sans-serif; max-width: 1000px; margin: 2rem auto; padding: 0 1rem; line-height: 1.6; color: #1a1a1a; }}
    h1 {{ border-bottom: 2px solid #333; padding-bottom: 0.5rem; }}
    h2 {{ color: #2c5282; margin-top: 2rem; }}
    .stats {{ display: flex; gap: 1.5rem; }}
    .stat {{ border-left: 4px solid #2c5282; padding-left: 1rem; }}
    table {{ border-collapse: collapse; width: 100%; }}
    th, td {{ padding: 0.4rem 0.6rem; border-bottom: 1px solid #ddd; text-align: left; }}
</style>
</head>
<body>
<h1>{escape(self._title)}</h1>
<div class="stats">
<div class="stat">Users<br><strong>{summary.total_users}</strong></div>
<div class="stat">Videos<br><strong>{summary.total_videos}</strong></div>
<div class="stat">Views<br><strong>{summary.total_views}</strong></div>
<div class="stat">Engagement<br><strong>{summary.average_engagement:.1f}%</strong></div>
</div>
<section><h2>Videos</h2><table>
<tr><th>Title</th><th>Views</th><th>Viewers</th><th>Avg watch</th><th>Completion</th><th>Skip</th><th>Rewatch</th></tr>
{video_rows}
</table></section>
<section><h2>Users</h2><table>
<tr><th>Email</th><th>Watched</th><th>Videos</th><th>Avg watch</th><th>Completion</th><th>Last active</th></tr>
{user_rows}
</table></section>
</body>
</html>"""
