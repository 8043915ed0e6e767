from __future__ import annotations

from typing import Any, Dict, Iterable, List

CHEERIO_SCRAPER = "apify~cheerio-scraper"
HTTP_REQUEST = "apify~http-request"
WEBSITE_CONTENT_CRAWLER = "apify~website-content-crawler"

ACTOR_LABELS = {
    CHEERIO_SCRAPER: "Cheerio Scraper",
    HTTP_REQUEST: "HTTP Request",
    WEBSITE_CONTENT_CRAWLER: "Website Content Crawler",
}

_PROXY = {"useApifyProxy": True}

WEBSITE_PAGE_FUNCTION = """async function pageFunction({ request, $ }) {
  const texts = (sel) => $(sel).map((i, el) => $(el).text().trim()).get().filter(Boolean);
  const keywords = $('meta[name="keywords"]').attr('content') || '';
  return {
    url: request.url,
    title: $('title').text().trim(),
    description: $('meta[name="description"]').attr('content') || '',
    keywords: keywords.split(',').map(k => k.trim()).filter(Boolean),
    headings: texts('h1, h2, h3, h4, h5, h6'),
    content: texts('p').join('\\n'),
    links: $('a').map((i, el) => $(el).attr('href')).get()
      .filter(h => h && !h.startsWith('#') && !h.startsWith('javascript:')),
    images: $('img').map((i, el) => $(el).attr('src')).get().filter(Boolean),
    timestamp: Date.now()
  };
}"""

TECHNICAL_SEO_PAGE_FUNCTION = """async function pageFunction({ request, $ }) {
  const meta = (sel) => $(sel).attr('content') || '';
  const keywords = meta('meta[name="keywords"]');
  return {
    url: request.url,
    title: $('title').text().trim(),
    description: meta('meta[name="description"]'),
    keywords: keywords.split(',').map(k => k.trim()).filter(Boolean),
    headings: $('h1, h2, h3, h4, h5, h6').map((i, el) => ({
      tag: el.tagName.toLowerCase(), text: $(el).text().trim()
    })).get().filter(h => h.text),
    content: $('p').map((i, el) => $(el).text().trim()).get().filter(Boolean).join('\\n'),
    links: $('a').map((i, el) => $(el).attr('href')).get()
      .filter(h => h && !h.startsWith('#') && !h.startsWith('javascript:')),
    images: $('img').map((i, el) => ({ src: $(el).attr('src'), alt: $(el).attr('alt') || '' })).get()
      .filter(img => img.src),
    schemas: $('script[type="application/ld+json"]').length,
    meta: {
      hasViewport: $('meta[name="viewport"]').length > 0,
      canonical: $('link[rel="canonical"]').attr('href') || '',
      robots: meta('meta[name="robots"]'),
      ogTitle: meta('meta[property="og:title"]'),
      ogDescription: meta('meta[property="og:description"]'),
      twitterCard: meta('meta[name="twitter:card"]'),
      hasFavicon: $('link[rel="icon"], link[rel="shortcut icon"]').length > 0
    },
    security: { isHttps: request.url.startsWith('https://') },
    timestamp: Date.now()
  };
}"""

PRODUCT_PAGE_FUNCTION = """async function pageFunction({ request, $ }) {
  const cards = '[data-component-type="s-search-result"], .s-result-item, .product, .product-item, '
    + '.product-card, .product-tile, [class*="ProductCard"], [class*="product-card"], [data-testid*="product"]';
  const first = (el, sels) => { for (const s of sels) { const t = $(el).find(s).first().text().trim(); if (t) return t; } return ''; };
  const attr = (el, sels, names) => { for (const s of sels) { const n = $(el).find(s).first();
    for (const a of names) { const v = n.attr(a); if (v) return v; } } return ''; };
  const products = [];
  $(cards).each((i, el) => {
    const name = first(el, ['.product-title', '.product-name', 'h2', 'h3', 'h4', '[class*="title"]', '[class*="name"]']);
    const price = first(el, ['.a-offscreen', '.price', '.selling-price', '.current-price', '[class*="price"]']);
    if (!name && !price) return;
    products.push({
      name, price,
      imageUrl: attr(el, ['.s-image', '.product-image img', 'img'], ['src', 'data-src', 'data-original', 'data-lazy-src']),
      ratingText: first(el, ['.a-icon-alt', '.rating', '.stars', '[class*="rating"]']),
      reviewCount: first(el, ['.review-count', '[class*="review"]', '.a-size-base']),
      url: attr(el, ['a'], ['href']),
      pageUrl: request.url
    });
  });
  return products;
}"""


def _start_urls(urls: Iterable[str]) -> List[Dict[str, str]]:
    return [{"url": url} for url in urls]


def website_run_input(urls: Iterable[str]) -> Dict[str, Any]:
    start_urls = _start_urls(urls)
    run_input: Dict[str, Any] = {
        "startUrls": start_urls,
        "runMode": "DEVELOPMENT",
        "pageFunction": WEBSITE_PAGE_FUNCTION,
        "proxyConfiguration": _PROXY,
    }
    if len(start_urls) > 1:
        run_input["maxRequestsPerCrawl"] = len(start_urls) * 2
        run_input["maxConcurrency"] = 2
    return run_input


def technical_seo_run_input(url: str) -> Dict[str, Any]:
    return {
        "startUrls": _start_urls([url]),
        "runMode": "DEVELOPMENT",
        "pageFunction": TECHNICAL_SEO_PAGE_FUNCTION,
        "proxyConfiguration": _PROXY,
    }


def product_run_input(url: str) -> Dict[str, Any]:
    return {
        "startUrls": _start_urls([url]),
        "runMode": "DEVELOPMENT",
        "pageFunction": PRODUCT_PAGE_FUNCTION,
        "proxyConfiguration": _PROXY,
        "maxCrawlDepth": 2,
        "maxRequestsPerCrawl": 50,
        "maxConcurrency": 10,
        "maxPagesPerCrawl": 5,
        "maxOutputItems": 200,
    }


def http_request_run_input(url: str) -> Dict[str, Any]:
    return {"url": url, "method": "GET", "timeoutSecs": 30, "proxyConfiguration": _PROXY}


def content_crawler_run_input(urls: Iterable[str]) -> Dict[str, Any]:
    start_urls = _start_urls(urls)
    return {
        "startUrls": start_urls,
        "maxCrawlDepth": 0,
        "maxCrawlPages": len(start_urls),
        "maxRequestsPerCrawl": len(start_urls) * 2,
        "maxConcurrency": 2,
        "proxyConfiguration": _PROXY,
    }
