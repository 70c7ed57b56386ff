from __future__ import annotations

import queue
from pathlib import Path
from typing import Any, Optional

import tkinter as tk
from tkinter import ttk, filedialog, messagebox

try:
    import ttkbootstrap as tb
except Exception:  # noqa: BLE001 - 允许在无 ttkbootstrap 时回退到 ttk
    tb = None  # type: ignore

try:
    from tkinterdnd2 import DND_FILES, TkinterDnD
except Exception:  # noqa: BLE001 - 若无拖拽库，使用普通 Tk
    DND_FILES = None  # type: ignore
    TkinterDnD = None  # type: ignore

from .model import JobState, ProgressSnapshot, TaskState

_SAMPLE_RATE_LABELS = {"44.1 kHz": 44, "48 kHz": 48, "96 kHz": 96}
_BIT_DEPTH_LABELS = {"16-bit": 16, "24-bit": 24}

_TASK_LABELS = {
    TaskState.PENDING.value: "Queued",
    TaskState.RESOLVING.value: "Preparing",
    TaskState.PROBING.value: "Probing",
    TaskState.ENCODING.value: "Encoding",
    TaskState.SUCCEEDED.value: "✓ Done",
    TaskState.FAILED.value: "✗ Failed",
    TaskState.CANCELLED.value: "Cancelled",
}


class AppView:
    """视图层：构建 UI、转发事件、接收控制器更新。"""

    def __init__(self, theme: str = "darkly", settings: Optional[dict] = None) -> None:
        settings = settings or {}
        # 拖拽需要 TkinterDnD 的根窗口；ttkbootstrap 只负责主题
        if TkinterDnD is not None:
            self.root = TkinterDnD.Tk()
            if tb is not None:
                tb.Style(theme=theme)
        elif tb is not None:
            self.root = tb.Window(themename=theme)
        else:
            self.root = tk.Tk()
        self.root.title("WMA Lossless Encoder")
        self.root.geometry("760x720")

        self.controller: Optional["AppController"] = None

        # 选项
        self.encoding_mode_var = tk.StringVar(value=settings.get("encoding_mode", "manual"))
        self.bit_depth_var = tk.StringVar(value=f"{settings.get('bit_depth', 16)}-bit")
        self.sample_rate_var = tk.StringVar(value=self._sample_rate_label(settings.get("sample_rate_khz", 48)))
        self.concurrency_var = tk.StringVar(value=str(settings.get("concurrency", 4)))
        self.output_mode_var = tk.StringVar(value=settings.get("output_mode", "custom"))
        self.output_dir_var = tk.StringVar(value=settings.get("output_dir", ""))
        self.subfolder_var = tk.StringVar(value=settings.get("subfolder_name", "WMA"))

        self._poll_interval_ms = 100
        self.tree_columns = ("filename", "folder", "status")

        self._build_widgets()
        self._sync_option_states()

    # ========= 控制器绑定 =========
    def bind_controller(self, controller: "AppController") -> None:
        self.controller = controller
        self.root.protocol("WM_DELETE_WINDOW", self._on_close)

    # ========= UI 构建 =========
    def _build_widgets(self) -> None:
        header = ttk.Frame(self.root)
        header.pack(side=tk.TOP, fill=tk.X, padx=16, pady=(14, 4))
        ttk.Label(header, text="WMA Lossless Encoder", font=("TkDefaultFont", 18, "bold")).pack(anchor=tk.W)
        ttk.Label(header, text="Convert audio files to WMA Lossless format").pack(anchor=tk.W)

        # 源文件：拖放区域 + 列表
        source = ttk.LabelFrame(self.root, text="Source Files")
        source.pack(side=tk.TOP, fill=tk.BOTH, expand=True, padx=16, pady=6)

        drop_target = ttk.Label(source, text="Drag audio files or folders here", anchor=tk.CENTER)
        drop_target.pack(fill=tk.X, padx=10, pady=10)
        if DND_FILES:
            drop_target.drop_target_register(DND_FILES)
            drop_target.dnd_bind("<<Drop>>", self._on_drop_event)

        buttons = ttk.Frame(source)
        buttons.pack(fill=tk.X, padx=10)
        ttk.Button(buttons, text="Add Files…", command=self._choose_files).pack(side=tk.LEFT)
        ttk.Button(buttons, text="Add Folder…", command=self._choose_folder).pack(side=tk.LEFT, padx=6)
        ttk.Button(buttons, text="Remove Selected", command=self._remove_selected).pack(side=tk.RIGHT)

        tree = ttk.Treeview(source, columns=self.tree_columns, show="headings", height=10)
        tree.heading("filename", text="File")
        tree.heading("folder", text="Folder")
        tree.heading("status", text="Status")
        tree.column("filename", stretch=True, width=240)
        tree.column("folder", stretch=True, width=320)
        tree.column("status", width=100, anchor=tk.CENTER)
        tree.pack(fill=tk.BOTH, expand=True, padx=10, pady=8)
        tree.bind("<Double-1>", self._on_row_double_click)
        self.tree = tree
        # 失败文件的原因，双击行查看
        self._errors: dict[str, str] = {}

        # 编码选项
        options = ttk.LabelFrame(self.root, text="Encoding Options")
        options.pack(side=tk.TOP, fill=tk.X, padx=16, pady=6)

        mode_row = ttk.Frame(options)
        mode_row.pack(fill=tk.X, padx=10, pady=4)
        ttk.Radiobutton(mode_row, text="Manual", value="manual", variable=self.encoding_mode_var,
                        command=self._sync_option_states).pack(side=tk.LEFT)
        ttk.Radiobutton(mode_row, text="Auto (match source)", value="auto", variable=self.encoding_mode_var,
                        command=self._sync_option_states).pack(side=tk.LEFT, padx=12)

        param_row = ttk.Frame(options)
        param_row.pack(fill=tk.X, padx=10, pady=4)
        ttk.Label(param_row, text="Bit Depth").pack(side=tk.LEFT)
        self.bit_depth_box = ttk.Combobox(param_row, textvariable=self.bit_depth_var, state="readonly",
                                          values=list(_BIT_DEPTH_LABELS), width=8)
        self.bit_depth_box.pack(side=tk.LEFT, padx=6)
        ttk.Label(param_row, text="Sample Rate").pack(side=tk.LEFT, padx=(16, 0))
        self.sample_rate_box = ttk.Combobox(param_row, textvariable=self.sample_rate_var, state="readonly",
                                            values=list(_SAMPLE_RATE_LABELS), width=10)
        self.sample_rate_box.pack(side=tk.LEFT, padx=6)
        ttk.Label(param_row, text="Parallel jobs").pack(side=tk.LEFT, padx=(16, 0))
        ttk.Spinbox(param_row, from_=1, to=16, textvariable=self.concurrency_var, width=4).pack(side=tk.LEFT, padx=6)

        # 输出位置
        output = ttk.LabelFrame(self.root, text="Output Folder")
        output.pack(side=tk.TOP, fill=tk.X, padx=16, pady=6)

        custom_row = ttk.Frame(output)
        custom_row.pack(fill=tk.X, padx=10, pady=2)
        ttk.Radiobutton(custom_row, text="Folder", value="custom", variable=self.output_mode_var,
                        command=self._sync_option_states).pack(side=tk.LEFT)
        self.output_entry = ttk.Entry(custom_row, textvariable=self.output_dir_var, width=50)
        self.output_entry.pack(side=tk.LEFT, fill=tk.X, expand=True, padx=6)
        self.browse_button = ttk.Button(custom_row, text="Browse", command=self._choose_output_dir)
        self.browse_button.pack(side=tk.LEFT)

        ttk.Radiobutton(output, text="Same folder as input", value="sameAsInput", variable=self.output_mode_var,
                        command=self._sync_option_states).pack(anchor=tk.W, padx=10, pady=2)

        sub_row = ttk.Frame(output)
        sub_row.pack(fill=tk.X, padx=10, pady=2)
        ttk.Radiobutton(sub_row, text="Subfolder next to input", value="subfolder", variable=self.output_mode_var,
                        command=self._sync_option_states).pack(side=tk.LEFT)
        self.subfolder_entry = ttk.Entry(sub_row, textvariable=self.subfolder_var, width=20)
        self.subfolder_entry.pack(side=tk.LEFT, padx=6)

        # 进度与状态
        progress = ttk.Frame(self.root)
        progress.pack(side=tk.TOP, fill=tk.X, padx=16, pady=6)
        self.progress_var = tk.DoubleVar(value=0.0)
        ttk.Progressbar(progress, variable=self.progress_var, maximum=100.0).pack(fill=tk.X)
        info = ttk.Frame(progress)
        info.pack(fill=tk.X)
        self.current_file_var = tk.StringVar(value="")
        self.percent_var = tk.StringVar(value="")
        ttk.Label(info, textvariable=self.current_file_var).pack(side=tk.LEFT)
        ttk.Label(info, textvariable=self.percent_var).pack(side=tk.RIGHT)

        # 操作按钮
        actions = ttk.Frame(self.root)
        actions.pack(side=tk.TOP, fill=tk.X, padx=16, pady=(4, 12))
        self.reset_button = ttk.Button(actions, text="Reset", command=self._on_reset)
        self.reset_button.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.cancel_button = ttk.Button(actions, text="Cancel", command=self._on_cancel, state=tk.DISABLED)
        self.cancel_button.pack(side=tk.LEFT, fill=tk.X, expand=True, padx=8)
        self.encode_button = ttk.Button(actions, text="Encode to WMA", command=self._on_encode)
        self.encode_button.pack(side=tk.LEFT, fill=tk.X, expand=True)

        # 状态栏
        self.status_var = tk.StringVar(value="Ready")
        status = ttk.Label(self.root, textvariable=self.status_var, relief=tk.SUNKEN, anchor=tk.W)
        status.pack(side=tk.BOTTOM, fill=tk.X)

    # ========= 公共接口（供控制器调用） =========
    def add_file_to_list(self, path: Path) -> None:
        self.tree.insert("", tk.END, iid=str(path), values=(path.name, str(path.parent), _TASK_LABELS["pending"]))

    def remove_file_from_list(self, path: Path) -> None:
        if self.tree.exists(str(path)):
            self.tree.delete(str(path))

    def clear_file_list(self) -> None:
        self.tree.delete(*self.tree.get_children())
        self.progress_var.set(0.0)
        self.current_file_var.set("")
        self.percent_var.set("")
        self.status_var.set("Ready")

    def update_task_status(self, task_id: str, state: str) -> None:
        if not self.tree.exists(task_id):
            return
        vals = list(self.tree.item(task_id).get("values") or [])
        # columns: filename, folder, status
        vals[2] = _TASK_LABELS.get(state, state)
        self.tree.item(task_id, values=vals)

    def prepare_for_run(self) -> None:
        self._errors.clear()
        for task_id in self.tree.get_children():
            self.update_task_status(task_id, TaskState.PENDING.value)

    def show_error(self, message: str) -> None:
        messagebox.showerror("WMA Lossless Encoder", message, parent=self.root)

    def get_encoding_mode(self) -> str:
        return str(self.encoding_mode_var.get())

    def get_bit_depth(self) -> int:
        return _BIT_DEPTH_LABELS.get(self.bit_depth_var.get(), 16)

    def get_sample_rate_khz(self) -> int:
        return _SAMPLE_RATE_LABELS.get(self.sample_rate_var.get(), 48)

    def get_concurrency(self) -> str:
        return str(self.concurrency_var.get())

    def get_output_mode(self) -> str:
        return str(self.output_mode_var.get())

    def get_output_directory(self) -> str:
        return str(self.output_dir_var.get())

    def get_subfolder_name(self) -> str:
        return str(self.subfolder_var.get())

    # ========= 事件回调 =========
    def _choose_output_dir(self) -> None:
        directory = filedialog.askdirectory(title="Select output folder")
        if directory:
            self.output_dir_var.set(directory)

    def _choose_files(self) -> None:
        paths = filedialog.askopenfilenames(
            title="Select audio files",
            filetypes=[("Audio", "*.mp3 *.wav *.aiff *.aif *.m4a *.flac *.ogg *.wma *.aac *.alac"), ("All files", "*")],
        )
        if paths and self.controller:
            self.controller.handle_file_drop(list(paths))

    def _choose_folder(self) -> None:
        directory = filedialog.askdirectory(title="Select a folder to scan")
        if directory and self.controller:
            self.controller.handle_file_drop([directory])

    def _remove_selected(self) -> None:
        if self.controller and not self.controller.is_busy:
            self.controller.remove_files(self.tree.selection())

    def _on_drop_event(self, event: Any) -> None:
        if not self.controller:
            return
        paths = list(self.root.tk.splitlist(event.data))
        if paths:
            self.controller.handle_file_drop(paths)

    def _on_row_double_click(self, _event: Any) -> None:
        task_id = self.tree.focus()
        reason = self._errors.get(task_id)
        if reason:
            messagebox.showinfo(Path(task_id).name, reason, parent=self.root)

    def _on_reset(self) -> None:
        if self.controller:
            self.controller.reset()

    def _on_cancel(self) -> None:
        if self.controller:
            self.controller.request_cancel()
            self.status_var.set("Cancelling…")

    def _on_encode(self) -> None:
        if self.controller:
            self.controller.start_encoding()

    def _on_close(self) -> None:
        if self.controller:
            self.controller.shutdown()
        self.root.destroy()

    def _sync_option_states(self) -> None:
        manual = self.encoding_mode_var.get() == "manual"
        for box in (self.bit_depth_box, self.sample_rate_box):
            box.configure(state="readonly" if manual else tk.DISABLED)
        mode = self.output_mode_var.get()
        custom_state = tk.NORMAL if mode == "custom" else tk.DISABLED
        self.output_entry.configure(state=custom_state)
        self.browse_button.configure(state=custom_state)
        self.subfolder_entry.configure(state=tk.NORMAL if mode == "subfolder" else tk.DISABLED)

    def _set_running(self, running: bool) -> None:
        self.encode_button.configure(state=tk.DISABLED if running else tk.NORMAL, text="Encoding…" if running else "Encode to WMA")
        self.reset_button.configure(state=tk.DISABLED if running else tk.NORMAL)
        self.cancel_button.configure(state=tk.NORMAL if running else tk.DISABLED)

    def _apply_snapshot(self, snapshot: ProgressSnapshot) -> None:
        self.progress_var.set(snapshot.fraction * 100)
        self.percent_var.set(f"{snapshot.percent}%" if snapshot.total else "")
        self.current_file_var.set(snapshot.current_file)
        if snapshot.status_message:
            self.status_var.set(snapshot.status_message)

    # ========= 轮询 UI 队列 =========
    def start_ui_update_loop(self) -> None:
        self.root.after(self._poll_interval_ms, self._poll_queue)

    def _poll_queue(self) -> None:
        if not self.controller:
            return
        latest: Optional[ProgressSnapshot] = None
        while True:
            try:
                msg = self.controller.ui_queue.get_nowait()
            except queue.Empty:
                break
            msg_type = msg.get("type")
            if msg_type == "task":
                self.update_task_status(msg["id"], msg["value"])
            elif msg_type == "error":
                self._errors[msg["id"]] = msg["value"]
            elif msg_type == "job":
                self._set_running(msg["value"] == JobState.RUNNING.value)
            elif msg_type == "progress":
                latest = msg["value"]
        # 只渲染最新快照
        if latest is not None:
            self._apply_snapshot(latest)
        self.root.after(self._poll_interval_ms, self._poll_queue)

    # ========= 运行 =========
    def run(self) -> None:
        self.root.mainloop()

    # ========= 工具 =========
    @staticmethod
    def _sample_rate_label(khz: int) -> str:
        for label, value in _SAMPLE_RATE_LABELS.items():
            if value == khz:
                return label
        return "48 kHz"
