"""Prompt templates for the map and reduce phases.

Templates are keyed by output language. Payloads are validated with
pydantic before rendering, so an empty segment or an empty set of
summaries never reaches the generation service.
"""

from models.payloads import MapPayload, ReducePayload

FINAL_START = "<FINAL_START>"
FINAL_END = "<FINAL_END>"

MAP_PROMPTS = {
    "en": """You are cleaning up text scraped from a web page.

Source: {source_url}

The text below is one segment of the page. It may contain navigation menus,
cookie banners, advertisements, share buttons and other boilerplate.

## Task
1. Remove all boilerplate and keep only the substantive content.
2. Summarize that content faithfully. Keep names, numbers, dates and
   concrete claims; do not add facts that are not in the text.
3. Write in English, as Markdown, without a preamble.

## Segment
{segment_text}""",
    "ja": """あなたはWebページから取得したテキストを整理する担当者です。

出典: {source_url}

以下はページの一部分です。ナビゲーション、Cookieバナー、広告、共有ボタンなどの
不要な要素が含まれている可能性があります。

## タスク
1. 不要な要素をすべて取り除き、本文の内容だけを残してください。
2. その内容を正確に要約してください。固有名詞、数値、日付、具体的な主張は残し、
   テキストにない事実を追加しないでください。
3. 日本語のMarkdownで、前置きなしで出力してください。

## セグメント
{segment_text}""",
}

REDUCE_PROMPTS = {
    "en": """You are an editor consolidating intermediate summaries into one document.

The summaries below were produced independently from segments of several web
pages. They are separated by the line "--- INTERMEDIATE SUMMARY END ---".

## Task
1. Merge them into one coherent, well-structured Markdown document.
2. Remove duplication across summaries and resolve overlapping points.
3. Keep every distinct fact; do not invent information.
4. Wrap the final document between {final_start} and {final_end}.
   Put nothing you want kept outside those markers.

## Intermediate summaries
{combined_text}""",
    "ja": """あなたは複数の中間要約を一つの文書にまとめる編集者です。

以下の要約は、複数のWebページのセグメントからそれぞれ独立に作成されたものです。
要約同士は "--- INTERMEDIATE SUMMARY END ---" の行で区切られています。

## タスク
1. 一つのまとまった、構成の整ったMarkdown文書に統合してください。
2. 要約間の重複を取り除き、重なる論点を整理してください。
3. 異なる事実はすべて残し、情報を捏造しないでください。
4. 最終的な文書を {final_start} と {final_end} の間に入れてください。
   残したい内容はマーカーの外に書かないでください。

## 中間要約
{combined_text}""",
}


def build_map_prompt(segment_text: str, source_url: str, language: str = "en") -> str:
    """Render the map prompt for one segment.

    Raises:
        pydantic.ValidationError: If segment_text is empty
    """
    payload = MapPayload(segment_text=segment_text, source_url=source_url)
    template = MAP_PROMPTS.get(language, MAP_PROMPTS["en"])
    return template.format(
        segment_text=payload.segment_text,
        source_url=payload.source_url or "unknown",
    )


def build_reduce_prompt(combined_text: str, language: str = "en") -> str:
    """Render the reduce prompt for the joined summaries.

    Raises:
        pydantic.ValidationError: If combined_text is empty
    """
    payload = ReducePayload(combined_text=combined_text)
    template = REDUCE_PROMPTS.get(language, REDUCE_PROMPTS["en"])
    return template.format(
        combined_text=payload.combined_text,
        final_start=FINAL_START,
        final_end=FINAL_END,
    )
