"""Static HTML template for the display console dashboard (served at /admin)."""

CONSOLE_INDEX_HTML = r"""
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>Display Console</title>
  <style>
    :root {
      --bg: #050b15;
      --panel: #0f1629;
      --text: #e8eef7;
      --muted: #9cb3d3;
      --accent: #6dd5fa;
      --danger: #ff6b6b;
      --border: rgba(255, 255, 255, 0.06);
      --font: "Inter", "Segoe UI", system-ui, -apple-system, sans-serif;
    }
    * { box-sizing: border-box; }
    body { margin: 0; font-family: var(--font); background: var(--bg); color: var(--text); }
    .page { max-width: 1200px; margin: 0 auto; padding: 24px 20px 48px; }
    header { display: flex; justify-content: space-between; align-items: center; margin-bottom: 16px; }
    header h1 { margin: 0; font-size: 20px; }
    .pill { font-size: 12px; color: var(--muted); border: 1px solid var(--border); border-radius: 999px; padding: 4px 10px; }
    .grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(340px, 1fr)); gap: 14px; }
    section { background: var(--panel); border: 1px solid var(--border); border-radius: 14px; padding: 16px; }
    section h2 { margin: 0 0 10px; font-size: 15px; }
    form, .row { display: flex; gap: 8px; flex-wrap: wrap; align-items: center; margin-bottom: 10px; }
    input, select, button { font: inherit; padding: 6px 10px; border-radius: 8px; border: 1px solid var(--border); background: #111b31; color: var(--text); }
    button { cursor: pointer; border-color: var(--accent); }
    button.delete-btn { border-color: var(--danger); color: var(--danger); }
    ul { list-style: none; margin: 0; padding: 0; }
    li { display: flex; justify-content: space-between; align-items: center; padding: 8px 0; border-bottom: 1px solid var(--border); }
    .badge { font-size: 12px; color: var(--muted); margin-left: 8px; }
    table { width: 100%; border-collapse: collapse; font-size: 13px; }
    th, td { text-align: left; padding: 6px; border-bottom: 1px solid var(--border); }
    td.user-agent { max-width: 260px; overflow: hidden; text-overflow: ellipsis; white-space: nowrap; }
    .error { color: var(--danger); font-size: 12px; min-height: 16px; }
    .wide { grid-column: 1 / -1; }
  </style>
</head>
<body>
<div class="page">
  <header>
    <h1>Display Console</h1>
    <span class="pill" id="channelState">channel: ...</span>
  </header>

  <div class="grid">
    <section>
      <h2>Display users</h2>
      <form id="createUserForm">
        <input id="newUsername" placeholder="Username" autocomplete="off" />
        <input id="newPassword" type="password" placeholder="Password" autocomplete="new-password" />
        <button type="submit">Create</button>
      </form>
      <ul id="usersList"><li>Loading users...</li></ul>
    </section>

    <section>
      <h2>Upload video</h2>
      <form id="uploadForm">
        <select id="targetUser"><option value="">Select Display User</option></select>
        <input id="videoFile" type="file" accept="video/*" />
        <button type="submit">Upload</button>
      </form>
      <div class="row">
        <select id="videoFilterUser"><option value="">All Users</option></select>
        <button id="filterVideosBtn">Filter</button>
      </div>
      <div class="error" id="videoError"></div>
      <ul id="videoList"><li>Loading videos...</li></ul>
    </section>

    <section class="wide">
      <h2>Login history</h2>
      <div class="row">
        <input id="filterDate" type="date" />
        <select id="historyUserFilter"><option value="">All Users</option></select>
        <button id="filterBtn">Filter</button>
        <button id="refreshBtn">Refresh</button>
      </div>
      <div class="error" id="historyError"></div>
      <table>
        <thead><tr><th>User</th><th>Login (IST)</th><th>Logout (IST)</th><th>Device</th><th>User-Agent</th></tr></thead>
        <tbody id="historyBody"><tr><td colspan="5">Loading history...</td></tr></tbody>
      </table>
    </section>

    <section class="wide">
      <h2>Export history</h2>
      <div class="row">
        <select id="exportUserSelect"><option value="">All Users</option></select>
        <button id="exportAllBtn">Export All History</button>
        <input id="exportSingleDate" type="date" />
        <button id="exportSelectedBtn">Export Selected Date</button>
        <input id="exportStartDate" type="date" />
        <input id="exportEndDate" type="date" />
        <button id="exportRangeBtn">Export Date Range</button>
      </div>
    </section>
  </div>
</div>
<script>
  const api = (path, opts = {}) => fetch('/admin' + path, Object.assign({ credentials: 'same-origin' }, opts));
  const postJSON = (path, body) => api(path, { method: 'POST', headers: { 'Content-Type': 'application/json' }, body: JSON.stringify(body || {}) });
  const esc = (s) => String(s == null ? '' : s).replace(/[&<>"']/g, c => ({ '&': '&amp;', '<': '&lt;', '>': '&gt;', '"': '&quot;', "'": '&#39;' }[c]));
  const $ = (id) => document.getElementById(id);
  let shownVersion = -1;
  let savedFilters = {};

  function syncFilterSelects() {
    if (document.activeElement !== $('historyUserFilter')) $('historyUserFilter').value = savedFilters.user || '';
    if (document.activeElement !== $('videoFilterUser')) $('videoFilterUser').value = savedFilters.video_user || '';
  }

  async function detail(resp) {
    try { const data = await resp.json(); return data.detail || resp.statusText; } catch (e) { return resp.statusText; }
  }

  function fillSelect(el, first, users) {
    const current = el.value;
    el.innerHTML = `<option value="">${first}</option>` + users.map(u => `<option value="${esc(u.username)}">${esc(u.username)}</option>`).join('');
    el.value = current;
  }

  async function loadUsers() {
    const resp = await api('/api/users');
    const ul = $('usersList');
    if (!resp.ok) { ul.innerHTML = `<li>${esc(await detail(resp))}</li>`; return; }
    const users = (await resp.json()).users || [];
    fillSelect($('targetUser'), 'Select Display User', users);
    fillSelect($('videoFilterUser'), 'All Users', users);
    fillSelect($('historyUserFilter'), 'All Users', users);
    fillSelect($('exportUserSelect'), 'All Users', users);
    syncFilterSelects();
    if (!users.length) { ul.innerHTML = '<li>No display users created yet</li>'; return; }
    ul.innerHTML = users.map(u => `
      <li><div><strong>${esc(u.username)}</strong>
        <span class="badge">Created: ${esc((u.created_at || '').slice(0, 10))}</span></div>
        <button class="delete-btn" data-username="${esc(u.username)}">Delete</button></li>`).join('');
    ul.querySelectorAll('.delete-btn').forEach(btn => btn.onclick = async () => {
      const name = btn.dataset.username;
      if (!confirm(`Delete user "${name}" and all their videos?\n\nThis action cannot be undone.`)) return;
      const r = await api('/api/users/' + encodeURIComponent(name), { method: 'DELETE' });
      alert(r.ok ? 'User deleted successfully!' : 'Failed to delete user: ' + await detail(r));
      await loadUsers(); await pollView();
    });
  }

  function renderView(view) {
    $('channelState').textContent = 'channel: ' + view.channel_state;
    const f = view.filters || {};
    if (document.activeElement !== $('filterDate')) $('filterDate').value = f.date || '';
    savedFilters = f;
    syncFilterSelects();

    const h = view.history;
    $('historyError').textContent = h.error && h.rows.length ? 'Refresh failed: ' + h.error : '';
    $('historyBody').innerHTML = h.placeholder
      ? `<tr><td colspan="5" style="text-align:center">${esc(h.placeholder)}</td></tr>`
      : h.rows.map(r => `<tr><td>${esc(r.user)}</td><td>${esc(r.login)}</td><td>${esc(r.logout)}</td>
          <td>${esc(r.device)}</td><td class="user-agent" title="${esc(r.user_agent)}">${esc(r.user_agent)}</td></tr>`).join('');

    const v = view.videos;
    $('videoError').textContent = v.error && v.rows.length ? 'Refresh failed: ' + v.error : '';
    const ul = $('videoList');
    if (v.placeholder) { ul.innerHTML = `<li>${esc(v.placeholder)}</li>`; return; }
    ul.innerHTML = v.rows.map(r => `
      <li><div><strong>${esc(r.filename)}</strong><span class="badge">User: ${esc(r.user)}</span>
        <span class="badge">Uploaded: ${esc(r.uploaded)}</span></div>
        <button class="delete-btn" data-id="${esc(r.id)}" data-path="${esc(r.storage_path)}">Delete</button></li>`).join('');
    ul.querySelectorAll('.delete-btn').forEach(btn => btn.onclick = async () => {
      if (!confirm('Delete this video?')) return;
      const r = await api('/api/videos/' + encodeURIComponent(btn.dataset.id) + '?storage_path=' + encodeURIComponent(btn.dataset.path), { method: 'DELETE' });
      alert(r.ok ? 'Video deleted successfully!' : 'Failed to delete video: ' + await detail(r));
      await pollView();
    });
  }

  async function pollView() {
    try {
      const resp = await api('/api/view');
      if (!resp.ok) return;
      const view = await resp.json();
      if (view.version !== shownVersion) { shownVersion = view.version; renderView(view); }
      else { $('channelState').textContent = 'channel: ' + view.channel_state; }
    } catch (e) { console.warn('view poll failed', e); }
  }

  async function applyFilters(body) {
    const resp = await postJSON('/api/filters', body);
    if (!resp.ok) { alert(await detail(resp)); return; }
    shownVersion = -1; renderView(await resp.json());
  }

  $('createUserForm').addEventListener('submit', async (e) => {
    e.preventDefault();
    const resp = await postJSON('/api/users', { username: $('newUsername').value, password: $('newPassword').value });
    if (!resp.ok) { alert(await detail(resp)); return; }
    alert(`User "${(await resp.json()).username}" created successfully!`);
    $('newUsername').value = ''; $('newPassword').value = '';
    await loadUsers();
  });

  $('uploadForm').addEventListener('submit', async (e) => {
    e.preventDefault();
    const file = $('videoFile').files[0];
    const user = $('targetUser').value;
    if (!user) { alert('Please select a display user'); return; }
    if (!file) { alert('Please select a video file'); return; }
    const btn = e.target.querySelector('button[type="submit"]');
    btn.disabled = true; btn.textContent = 'Uploading...';
    try {
      const qs = '?user=' + encodeURIComponent(user) + '&filename=' + encodeURIComponent(file.name);
      const resp = await api('/api/videos' + qs, { method: 'PUT', headers: { 'Content-Type': file.type || 'application/octet-stream' }, body: file });
      alert(resp.ok ? 'Video uploaded successfully!' : 'Upload failed: ' + await detail(resp));
      if (resp.ok) { $('videoFile').value = ''; $('targetUser').value = ''; await pollView(); }
    } finally { btn.disabled = false; btn.textContent = 'Upload'; }
  });

  $('filterVideosBtn').onclick = () => applyFilters({ video_user: $('videoFilterUser').value });
  $('filterBtn').onclick = () => applyFilters({ date: $('filterDate').value, user: $('historyUserFilter').value });
  $('refreshBtn').onclick = async () => {
    $('filterDate').value = ''; $('historyUserFilter').value = '';
    const resp = await postJSON('/api/refresh');
    if (resp.ok) { shownVersion = -1; renderView(await resp.json()); }
  };

  async function exportCsv(btn, label, params) {
    btn.disabled = true; btn.textContent = 'Exporting...';
    try {
      params.user = $('exportUserSelect').value;
      const resp = await api('/api/export?' + new URLSearchParams(params));
      if (!resp.ok) { alert(await detail(resp)); return; }
      const blob = await resp.blob();
      const name = (resp.headers.get('Content-Disposition') || '').split('filename="')[1] || 'history.csv';
      const a = document.createElement('a');
      a.href = URL.createObjectURL(blob); a.download = name.replace(/"$/, ''); a.click();
      URL.revokeObjectURL(a.href);
      alert(`Exported ${resp.headers.get('X-Export-Count')} records successfully!`);
    } finally { btn.disabled = false; btn.textContent = label; }
  }
  $('exportAllBtn').onclick = (e) => exportCsv(e.target, 'Export All History', { mode: 'all' });
  $('exportSelectedBtn').onclick = (e) => exportCsv(e.target, 'Export Selected Date', { mode: 'date', date: $('exportSingleDate').value });
  $('exportRangeBtn').onclick = (e) => exportCsv(e.target, 'Export Date Range', { mode: 'range', start: $('exportStartDate').value, end: $('exportEndDate').value });

  document.addEventListener('visibilitychange', () => {
    if (!document.hidden) postJSON('/api/visibility', { visible: true }).then(pollView).catch(() => {});
  });

  loadUsers();
  pollView();
  setInterval(() => { if (!document.hidden) pollView(); }, 1500);
</script>
</body>
</html>
"""
