"""カタログのスナップショット書き出し（検索インデックス・ページ分割・関連作品）."""
