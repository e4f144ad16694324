# slacksite

Turn a Slack workspace export into something you can read and search.

`slacksite` loads the users, channels, private channels, direct messages,
group DMs and messages of an unpacked Slack export into a SQLite database
(`slack.db`), builds a full-text search index next to it (the `slack.bleve`
directory), and serves the result as a small website you browse in your own
web browser.

## Installation

```console
pip install .
```

This installs the `slack-site` command.

## Usage

### 1. Ingest an export

Point `--input` at the unpacked export directory and `--data` at the
directory the database and search index should be written to (it is created
if it does not exist):

```console
slack-site ingest --input ./my-workspace-export --data ./data
```

The export directory must hold `users.json`, `channels.json`, `groups.json`,
`dms.json` and `mpims.json`, plus one sub-directory of daily `*.json` files
per conversation, named by the conversation's id or name. Directories that do
not belong to a known conversation, and hidden directories, are skipped.

Ingesting always starts fresh: an existing `slack.db` and search index in the
data directory are replaced. Progress is printed as messages are loaded, with
totals for users, conversations, members, messages, files and attachments.
A message that appears more than once in the export is stored once.

Message bodies are stored as HTML. Rich-text blocks keep links, bold, italic,
code, strike-through, preformatted sections and quotes, and show user, channel
and broadcast mentions; messages without rich text fall back to their escaped
plain text.

### 2. Browse and search

```console
slack-site serve --data ./data
```

The server listens on `:8080` (all interfaces) by default, prints its address
and asks the desktop to open it in a browser. Use `--addr` to choose another
address:

```console
slack-site serve --data ./data --addr localhost:9000
```

The site lists channels, private channels, DMs and group DMs with their member
counts, shows each conversation oldest-first in pages of 50 messages, and
offers a search page with 20 results per page. Search results show a snippet
of up to 200 characters with its HTML tags kept balanced. If the search index
is missing, browsing still works and searches return nothing.

Search queries understand:

- `word` – optional term; documents matching more terms rank higher
- `+word` – required term
- `-word` – excluded term
- `"two words"` – the words next to each other
- `field:word` – a term in one field only (for example `name:alice` or
  `text:deploy`)

Words are matched case-insensitively, without stemming, and common English
stop words are ignored.

Files attached to messages link to their original Slack URLs. If you have
copied those files somewhere else, laid out by `a/b/c/<hash>_<name>` paths
(see `slacksite.urlpath.relative_path`), pass that location's base URL with
`--mirror` and the links point there instead:

```console
slack-site serve --data ./data --mirror https://files.example.com/slack
```

Images are shown inline; other files are offered as links.

### 3. Rebuild the search index

To rebuild the search index from an existing database without ingesting the
export again:

```console
slack-site reindex --data ./data
```

## Using it from Python

The building blocks are importable on their own, for example:

```python
from slacksite.msghtml import render
from slacksite.models import Message
from slacksite.truncate import truncate_text
from slacksite.urlpath import relative_path

msg = Message.from_dict({"text": "Hello <world>"})
render(msg)                        # 'Hello &lt;world&gt;'
truncate_text("<b>hello there</b>", 8)
relative_path("https://files.slack.com/files-pri/T1-F1/photo.png", "")
```

`slacksite.server.Server` is a plain WSGI application, so it can be run under
any WSGI server given a connection from `slacksite.db.open_read_only` and an
index from `slacksite.search.open_existing` (or `None`).

## What it does not do

`slacksite` does not download message files or copy them anywhere. The
`--mirror` option of `serve` only rewrites file links to a location you have
filled yourself; files are otherwise linked at their Slack URLs, which
usually need a signed-in Slack session to open.

## Running the tests

```console
pip install ".[test]"
pytest
```