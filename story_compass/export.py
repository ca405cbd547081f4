import html
import json
from string import Template

from .chart import faction_color_map, project_snapshot
from .models import GraphData
from .snapshots import latest_snapshot

ECHARTS_CDN = "https://cdn.jsdelivr.net/npm/echarts@5/dist/echarts.min.js"

_PAGE = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>$title - Relationship Graph</title>
<script src="$echarts_src"></script>
<style>
  body { margin: 0; background: #0f172a; font-family: system-ui; overflow: hidden; }
  #graph { width: 100vw; height: 100vh; }
  .title { position: fixed; top: 16px; left: 16px; color: #e2e8f0; font-size: 18px; z-index: 10; text-shadow: 0 0 10px rgba(99,102,241,0.5); }
</style>
</head>
<body>
<div class="title">$title - Relationship Graph</div>
<div id="graph"></div>
<script>
var data = $data;
var chart = echarts.init(document.getElementById('graph'));
chart.setOption({
  tooltip: {},
  legend: [{ data: data.categories.map(function(c){ return c.name; }), textStyle: { color: '#e2e8f0' }, top: 20, right: 20 }],
  animationDuration: 1500,
  animationEasingUpdate: 'quinticInOut',
  series: [{
    type: 'graph',
    layout: 'force',
    data: data.nodes,
    links: data.links,
    categories: data.categories,
    roam: true,
    label: { position: 'right', formatter: '{b}', color: '#e2e8f0' },
    lineStyle: { curveness: 0.2 },
    emphasis: { focus: 'adjacency', lineStyle: { width: 6 } },
    force: { repulsion: 200, edgeLength: [80, 200], gravity: 0.1 }
  }]
});
window.addEventListener('resize', function(){ chart.resize(); });
</script>
</body>
</html>
"""
)


def generate_export_html(graph_data: GraphData, title: str) -> str:
    """Standalone dark-theme page for the latest snapshot; empty string when there is none."""
    snapshot = latest_snapshot(graph_data.snapshots)
    if snapshot is None:
        return ""
    chart = project_snapshot(snapshot, dark=True, faction_colors=faction_color_map(snapshot.nodes))
    data = json.dumps(chart.to_echarts(), ensure_ascii=False).replace("</", "<\\/")
    return _PAGE.substitute(title=html.escape(title), echarts_src=ECHARTS_CDN, data=data)
