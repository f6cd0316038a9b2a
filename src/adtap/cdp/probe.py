"""In-page relay script and DOM snapshot expression.

The relay observes the page and reports raw activity through a Runtime
binding as JSON messages `{surface, op, args, t}` where `t` is the page's
performance.now(). It never blocks or alters calls, with two exceptions that
mirror the host-side monitor: trusted clicks with a destination have their
default navigation suppressed, and a no-op Enabler shim is installed when no
exit API appears.

PUBLIC API:
  - BINDING_NAME: Runtime binding receiving relay messages
  - RELAY_SCRIPT: Script evaluated on every new document
  - SNAPSHOT_EXPRESSION: Expression returning viewport and element layout
  - ANCHOR_CENTER_EXPRESSION: Expression locating the first clickable anchor
"""

BINDING_NAME = "__adtapRelay"

RELAY_SCRIPT = r"""
(() => {
  if (window.__adtapRelayInstalled) return;
  window.__adtapRelayInstalled = true;

  const send = (surface, op, args) => {
    try {
      window.__adtapRelay(JSON.stringify({ surface, op, args: args || [], t: performance.now() }));
    } catch (e) {}
  };
  const str = (v) => { try { return String(v); } catch (e) { return ''; } };
  const wrap = (obj, name, before) => {
    try {
      const orig = obj[name];
      if (typeof orig !== 'function') return;
      obj[name] = function (...args) {
        try { before.apply(this, args); } catch (e) {}
        return orig.apply(this, args);
      };
    } catch (e) {}
  };

  // Network
  wrap(window, 'fetch', (input, init) => {
    const url = typeof input === 'string' ? input : (input && input.url) || '';
    send('network', 'fetch', [str(url), (init && init.method) || 'GET']);
  });
  let xhrSeq = 0;
  wrap(XMLHttpRequest.prototype, 'open', function (method, url) {
    this.__adtapId = ++xhrSeq;
    send('network', 'xhr_open', [this.__adtapId, str(method), str(url)]);
  });
  wrap(XMLHttpRequest.prototype, 'send', function () {
    send('network', 'xhr_send', [this.__adtapId || 0]);
  });

  // Storage
  try {
    wrap(Storage.prototype, 'setItem', (k, v) => send('storage', 'set_item', [str(k), str(v)]));
    wrap(Storage.prototype, 'removeItem', (k) => send('storage', 'remove_item', [str(k)]));
    wrap(Storage.prototype, 'clear', () => send('storage', 'clear', []));
  } catch (e) {}
  try {
    const desc = Object.getOwnPropertyDescriptor(Document.prototype, 'cookie');
    if (desc && desc.set) {
      Object.defineProperty(document, 'cookie', {
        configurable: true,
        get() { return desc.get.call(document); },
        set(v) { send('storage', 'set_cookie', [str(v)]); desc.set.call(document, v); },
      });
    }
  } catch (e) {}

  // Dialogs and logging
  ['alert', 'confirm', 'prompt'].forEach((n) => wrap(window, n, (m) => send('dialogs', n, [m == null ? '' : str(m)])));
  ['error', 'warn'].forEach((n) => wrap(console, n, (...a) => send('console', n, a.map(str))));

  // Legacy document writes
  ['write', 'writeln'].forEach((n) => wrap(document, n, (...a) => send('document', n, a.map(str))));

  // Element reference writes
  const propTargets = [
    [window.HTMLImageElement, 'src'], [window.HTMLMediaElement, 'src'], [window.HTMLSourceElement, 'src'],
    [window.HTMLScriptElement, 'src'], [window.HTMLLinkElement, 'href'],
  ];
  propTargets.forEach(([cls, prop]) => {
    try {
      const desc = Object.getOwnPropertyDescriptor(cls.prototype, prop);
      if (!desc || !desc.set) return;
      Object.defineProperty(cls.prototype, prop, {
        configurable: true,
        get() { return desc.get.call(this); },
        set(v) { send('elements', 'set_property', [this.tagName, prop, str(v)]); desc.set.call(this, v); },
      });
    } catch (e) {}
  });
  wrap(Element.prototype, 'setAttribute', function (name, value) {
    send('elements', 'set_attribute', [this.tagName, str(name), str(value)]);
  });

  // Style writes
  try {
    wrap(CSSStyleDeclaration.prototype, 'setProperty', (p, v) => send('styles', 'set_property', [str(p), str(v)]));
    const css = Object.getOwnPropertyDescriptor(CSSStyleDeclaration.prototype, 'cssText');
    if (css && css.set) {
      Object.defineProperty(CSSStyleDeclaration.prototype, 'cssText', {
        configurable: true,
        get() { return css.get.call(this); },
        set(v) { send('styles', 'set_css_text', [str(v)]); css.set.call(this, v); },
      });
    }
  } catch (e) {}

  // Drawing surfaces, flushed in batches
  let canvasSeq = 0;
  let batch = [];
  const flush = () => { if (batch.length) { send('canvas', 'ops', batch); batch = []; } };
  setInterval(flush, 100);
  const canvasOps = ['save', 'restore', 'setTransform', 'resetTransform', 'transform', 'translate', 'scale',
    'rotate', 'beginPath', 'moveTo', 'lineTo', 'quadraticCurveTo', 'bezierCurveTo', 'arc', 'rect',
    'closePath', 'stroke', 'strokeRect'];
  try {
    const proto = CanvasRenderingContext2D.prototype;
    canvasOps.forEach((op) => wrap(proto, op, function (...args) {
      const c = this.canvas;
      if (!c.__adtapId) c.__adtapId = ++canvasSeq;
      const nums = args.filter((a) => typeof a === 'number' || typeof a === 'boolean');
      batch.push([c.__adtapId, c.width, c.height, op, nums, this.lineWidth, str(this.strokeStyle)]);
      if (batch.length >= 200) flush();
    }));
  } catch (e) {}

  // Window navigation
  wrap(window, 'open', (url) => send('window', 'open', [url == null ? '' : str(url)]));

  // Document events
  const clickTag = () => window.clickTag || window.clickTAG || window.clicktag || '';
  document.addEventListener('DOMContentLoaded', () => send('document', 'event', ['DOMContentLoaded', {}]));
  window.addEventListener('load', () => send('document', 'event', ['load', {}]));
  window.addEventListener('error', (e) => send('document', 'event', ['error', { message: str(e && e.message) }]));
  ['pointerdown', 'mousedown', 'touchstart', 'keydown'].forEach((k) => window.addEventListener(k, (e) => {
    send('document', 'event', [k, { timestamp: e.timeStamp, key: e.key || null, trusted: e.isTrusted }]);
  }, true));
  document.addEventListener('click', (e) => {
    const a = e.target && e.target.closest ? e.target.closest('a[href]') : null;
    const href = a ? a.getAttribute('href') : '';
    if (e.isTrusted && (href || clickTag())) e.preventDefault();
    send('document', 'event', ['click', { timestamp: e.timeStamp, trusted: e.isTrusted, href }]);
  }, true);

  // Structural changes
  try {
    new MutationObserver((list) => {
      const added = [];
      list.forEach((m) => m.addedNodes.forEach((n) => { if (n.nodeType === 1) added.push(n.nodeName); }));
      send('observers', 'mutation', [added]);
    }).observe(document.documentElement, { childList: true, subtree: true });
  } catch (e) {}

  // Performance timelines
  const relayEntry = (e) => send('performance', 'entry', [{
    entry_type: e.entryType, name: e.name, start_time: e.startTime, duration: e.duration,
    transfer_size: e.transferSize || 0, encoded_body_size: e.encodedBodySize || 0,
    decoded_body_size: e.decodedBodySize || 0,
  }]);
  ['resource', 'paint', 'longtask'].forEach((type) => {
    try { new PerformanceObserver((l) => l.getEntries().forEach(relayEntry)).observe({ type, buffered: true }); } catch (e) {}
  });
  const frame = (ts) => { send('performance', 'entry', [{ entry_type: 'frame', start_time: ts }]); if (performance.now() < 3500) requestAnimationFrame(frame); };
  requestAnimationFrame(frame);

  // Globals, exit API and animation libraries
  const exitHooked = new WeakSet();
  const hookExit = (api) => {
    if (!api || exitHooked.has(api)) return;
    exitHooked.add(api);
    ['exit', 'exitOverride', 'dynamicExit'].forEach((m) => wrap(api, m, (name, url) => {
      send('window', 'exit', [m, name == null ? null : str(name), typeof url === 'string' ? url : '']);
    }));
  };
  let libs = { gsap: false, anime: false };
  const hookLibs = () => {
    const g = window.gsap;
    if (g && !libs.gsap) {
      libs.gsap = true;
      const tween = (i) => (...a) => {
        const v = a[i] || {};
        send('timeline', 'tween', [typeof v.duration === 'number' ? v.duration : null, typeof v.repeat === 'number' ? v.repeat : null]);
      };
      wrap(g, 'to', tween(1)); wrap(g, 'from', tween(1)); wrap(g, 'fromTo', tween(2));
      const tl = g.timeline;
      if (typeof tl === 'function') {
        const timelines = [];
        g.timeline = function (...a) { const t = tl.apply(this, a); timelines.push(t); return t; };
        const tlPoll = setInterval(() => {
          timelines.forEach((t) => { try { send('timeline', 'tween', [t.duration(), null]); } catch (e) {} });
          if (performance.now() >= 30000) clearInterval(tlPoll);
        }, 2000);
      }
    }
    if (typeof window.anime === 'function' && !libs.anime) {
      libs.anime = true;
      const orig = window.anime;
      const hooked = function (p, ...rest) {
        try { send('timeline', 'tween', [typeof p.duration === 'number' ? p.duration / 1000 : null, null]); } catch (e) {}
        return orig.call(this, p, ...rest);
      };
      Object.assign(hooked, orig);
      window.anime = hooked;
    }
  };
  let polls = 0;
  const poll = setInterval(() => {
    polls++;
    hookLibs();
    if (window.Enabler && !window.Enabler.__adtapShim) hookExit(window.Enabler);
    send('globals', 'update', [{
      jQuery: !!(window.jQuery || window.$), clickTag: str(clickTag()),
      Enabler: !!(window.Enabler && !window.Enabler.__adtapShim),
    }]);
    if (polls === 20 && !window.Enabler) {
      const listeners = {};
      const shim = {
        __adtapShim: true,
        isInitialized: () => true, isVisible: () => true,
        addEventListener: (k, cb) => { (listeners[String(k).toLowerCase()] = listeners[String(k).toLowerCase()] || []).push(cb); },
        removeEventListener: () => {},
        dispatchEvent: (k) => (listeners[String(k).toLowerCase()] || []).forEach((cb) => { try { cb(); } catch (e) {} }),
        getUrl: () => clickTag(),
        exit: () => {}, exitOverride: () => {}, dynamicExit: () => {},
      };
      hookExit(shim);
      window.Enabler = shim;
      send('window', 'exit_shim', []);
      setTimeout(() => ['init', 'page_loaded', 'visible'].forEach((k) => shim.dispatchEvent(k)), 1500);
    }
    if (polls >= 50) clearInterval(poll);
  }, 200);
})();
"""

SNAPSHOT_EXPRESSION = r"""
(() => {
  const props = ['position', 'top', 'bottom', 'left', 'right', 'width', 'height', 'background-color',
    'border-top-width', 'border-bottom-width', 'border-left-width', 'border-right-width',
    'border-top-color', 'border-bottom-color', 'border-left-color', 'border-right-color',
    'animation', 'animation-duration', 'animation-iteration-count'];
  const out = [];
  const nodes = document.querySelectorAll('*');
  for (let i = 0; i < nodes.length && i < 3000; i++) {
    const el = nodes[i];
    const cs = getComputedStyle(el);
    const computed = {};
    props.forEach((p) => { computed[p] = cs.getPropertyValue(p); });
    const r = el.getBoundingClientRect();
    out.push({ tag: el.tagName, style: el.getAttribute('style') || '', computed, rect: [r.left, r.top, r.width, r.height] });
  }
  return { viewport: [window.innerWidth, window.innerHeight], elements: out };
})()
"""

ANCHOR_CENTER_EXPRESSION = r"""
(() => {
  const el = document.querySelector('a[href]') || document.body;
  if (!el) return null;
  const r = el.getBoundingClientRect();
  return [r.left + r.width / 2, r.top + r.height / 2];
})()
"""
