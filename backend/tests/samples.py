"""
Canned upstream documents shared by several test modules.
"""

CHANNEL_ID = "UCabcdefghijklmnopqrstuv"
YOUTUBE_FEED_URL = f"https://www.youtube.com/feeds/videos.xml?channel_id={CHANNEL_ID}"

# Sample YouTube channel feed: one regular video, one short
SAMPLE_YOUTUBE_FEED = f"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns:yt="http://www.youtube.com/xml/schemas/2015" xmlns:media="http://search.yahoo.com/mrss/" xmlns="http://www.w3.org/2005/Atom">
  <link rel="self" href="{YOUTUBE_FEED_URL}"/>
  <id>yt:channel:{CHANNEL_ID}</id>
  <yt:channelId>{CHANNEL_ID}</yt:channelId>
  <title>Test Channel</title>
  <link rel="alternate" href="https://www.youtube.com/channel/{CHANNEL_ID}"/>
  <entry>
    <id>yt:video:dQw4w9WgXcQ</id>
    <yt:videoId>dQw4w9WgXcQ</yt:videoId>
    <title>Regular video</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=dQw4w9WgXcQ"/>
    <author><name>Test Channel</name></author>
    <published>2024-02-20T10:00:00+00:00</published>
    <updated>2024-02-21T10:00:00+00:00</updated>
    <media:group>
      <media:title>Regular video</media:title>
      <media:content url="https://www.youtube.com/v/dQw4w9WgXcQ?version=3" type="application/x-shockwave-flash" width="640" height="390"/>
      <media:thumbnail url="https://i1.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg" width="480" height="360"/>
      <media:description>Chapters:
0:00 Intro
1:05:30 Finale
Notes at https://example.com/notes &lt;script&gt;alert(1)&lt;/script&gt;</media:description>
    </media:group>
  </entry>
  <entry>
    <id>yt:video:abcdefghijk</id>
    <yt:videoId>abcdefghijk</yt:videoId>
    <title>A short</title>
    <link rel="alternate" href="https://www.youtube.com/shorts/abcdefghijk"/>
    <author><name>Test Channel</name></author>
    <published>2024-02-22T10:00:00+00:00</published>
    <media:group>
      <media:title>A short</media:title>
      <media:thumbnail url="https://i2.ytimg.com/vi/abcdefghijk/hqdefault.jpg" width="480" height="360"/>
      <media:description>Quick one 2:15</media:description>
    </media:group>
  </entry>
</feed>
"""

RSS_FEED_URL = "https://example.com/feed.xml"

# Sample RSS 2.0 feed with content:encoded and Media RSS fields
SAMPLE_RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/" xmlns:media="http://search.yahoo.com/mrss/" xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>Example Blog</title>
    <link>https://example.com/</link>
    <image>
      <url>https://example.com/logo.png</url>
      <title>Example Blog</title>
      <link>https://example.com/</link>
    </image>
    <item>
      <title>The Future of Feeds</title>
      <link>https://example.com/posts/future-of-feeds</link>
      <guid>https://example.com/posts/future-of-feeds</guid>
      <description>Where feeds are headed.</description>
      <content:encoded><![CDATA[<p onclick="steal()">Long form <b>body</b>.</p><script>bad()</script><img src="https://example.com/inline.jpg">]]></content:encoded>
      <dc:creator>Jane Writer</dc:creator>
      <pubDate>Mon, 15 Jan 2024 09:00:00 GMT</pubDate>
      <media:thumbnail url="https://example.com/thumb.jpg"/>
    </item>
    <item>
      <title>Podcast Episode 12</title>
      <link>https://example.com/episodes/12</link>
      <description>Show notes for episode twelve.</description>
      <pubDate>Sun, 14 Jan 2024 15:00:00 GMT</pubDate>
      <enclosure url="https://example.com/ep12.jpg" type="image/jpeg" length="1234"/>
    </item>
  </channel>
</rss>
"""

REDDIT_FEED_URL = "https://www.reddit.com/r/pics.rss"
REDDIT_POST_LINK = "https://www.reddit.com/r/pics/comments/1abcde/a_nice_picture/"
REDDIT_POST_JSON = "https://www.reddit.com/r/pics/comments/1abcde/a_nice_picture.json"

# Sample subreddit Atom feed, one image post
SAMPLE_REDDIT_FEED = f"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:media="http://search.yahoo.com/mrss/">
  <title>pics</title>
  <entry>
    <author><name>/u/bob</name></author>
    <content type="html">&lt;table&gt; &lt;tr&gt;&lt;td&gt; &lt;a href=&quot;{REDDIT_POST_LINK}&quot;&gt; &lt;img src=&quot;https://b.thumbs.redditmedia.com/thumb.jpg&quot; alt=&quot;A nice picture&quot; /&gt; &lt;/a&gt; &lt;/td&gt;&lt;td&gt; &amp;#32; submitted by &amp;#32; &lt;a href=&quot;https://www.reddit.com/user/bob&quot;&gt; /u/bob &lt;/a&gt; &lt;br/&gt; &lt;span&gt;&lt;a href=&quot;https://i.redd.it/full.jpg&quot;&gt;[link]&lt;/a&gt;&lt;/span&gt; &amp;#32; &lt;span&gt;&lt;a href=&quot;{REDDIT_POST_LINK}&quot;&gt;[comments]&lt;/a&gt;&lt;/span&gt; &lt;/td&gt;&lt;/tr&gt;&lt;/table&gt;</content>
    <id>t3_1abcde</id>
    <media:thumbnail url="https://b.thumbs.redditmedia.com/thumb.jpg" />
    <link href="{REDDIT_POST_LINK}" />
    <updated>2024-02-28T08:00:00+00:00</updated>
    <published>2024-02-28T08:00:00+00:00</published>
    <title>A nice picture</title>
  </entry>
</feed>
"""


def reddit_post_payload(**data) -> list:
    """Shape of https://www.reddit.com/<permalink>.json"""
    return [{"kind": "Listing", "data": {"children": [{"kind": "t3", "data": data}]}}]
